"""
Denavit-Hartenberg definitions for the da Vinci patient-side manipulator.

Convention: standard DH, T_i = Rz(theta_i) * Tz(d_i) * Tx(a_i) * Rx(alpha_i).
Joint values q are joint_states displacements; DH values are q + q_offset.
Joint index 2 is the prismatic tool insertion, all others are revolute.

DH table (index: a, d, alpha, q_offset):
  0 outer yaw        0       0  pi/2   0
  1 outer pitch      0       0  pi/2   pi/2
  2 insertion        0       0  0      -insertion_offset
  3 shaft roll       0       0  pi/2   pi
  4 wrist bend       a5      0  -pi/2  pi/2
  5 jaw rotation     0       0  pi/2   pi/2
  6 jaw opening      0       0  0      0

The wrist-bend axis (z4) and the jaw-rotation axis (z5) do not intersect;
they are a5 apart along x5. The limits below are the nominal hardware
range and should be checked against the arm in use.
"""

import math
from dataclasses import dataclass, replace
from typing import Iterable, Tuple

import numpy as np

from .error_handling import ConfigurationError

N_JOINTS = 7
PRISMATIC_JOINT = 2

# offset from wrist bend to jaw rotation axis (m)
DIST_FROM_WRIST_BEND_AXIS_TO_GRIPPER_JAW_ROT_AXIS = 0.0091
GRIPPER_JAW_LENGTH = 0.0102
# insertion needed to put the wrist-bend axis through the base origin
INSERTION_OFFSET = 0.0156

DH_A_PARAMS = (0.0, 0.0, 0.0, 0.0, DIST_FROM_WRIST_BEND_AXIS_TO_GRIPPER_JAW_ROT_AXIS, 0.0, 0.0)
DH_D_PARAMS = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
DH_ALPHA_PARAMS = (math.pi / 2, math.pi / 2, 0.0, math.pi / 2, -math.pi / 2, math.pi / 2, 0.0)
DH_Q_OFFSETS = (0.0, math.pi / 2, -INSERTION_OFFSET, math.pi, math.pi / 2, math.pi / 2, 0.0)

Q_LOWER_LIMITS = (-1.0, -0.7, 0.01, -2.25, -1.57, -1.39, -1.57)
Q_UPPER_LIMITS = (1.0, 0.7, 0.23, 2.25, 1.57, 1.39, 1.57)

JOINT_NAMES = (
    "outer_yaw",
    "outer_pitch",
    "insertion",
    "tool_roll",
    "wrist_bend",
    "jaw_rotation",
    "jaw_opening",
)


@dataclass(frozen=True)
class DHLink:
    """A single row of the DH parameter table plus its joint range."""
    a: float
    d: float
    alpha: float
    q_offset: float
    q_min: float
    q_max: float
    prismatic: bool = False
    continuous: bool = False

    def __post_init__(self):
        if self.q_min > self.q_max:
            raise ConfigurationError(
                f"q_min ({self.q_min}) is greater than q_max ({self.q_max})")


@dataclass(frozen=True)
class DHParameterSet:
    """Immutable 7-link DH table with the gripper jaw length."""
    links: Tuple[DHLink, ...]
    gripper_jaw_length: float = GRIPPER_JAW_LENGTH

    def __post_init__(self):
        object.__setattr__(self, "links", tuple(self.links))
        if len(self.links) != N_JOINTS:
            raise ConfigurationError(
                f"Expected {N_JOINTS} DH links, got {len(self.links)}")
        if not self.gripper_jaw_length > 0.0:
            raise ConfigurationError(
                f"gripper_jaw_length must be positive, got {self.gripper_jaw_length}")

    @classmethod
    def default(cls) -> "DHParameterSet":
        links = [
            DHLink(a=DH_A_PARAMS[i], d=DH_D_PARAMS[i], alpha=DH_ALPHA_PARAMS[i],
                   q_offset=DH_Q_OFFSETS[i], q_min=Q_LOWER_LIMITS[i],
                   q_max=Q_UPPER_LIMITS[i], prismatic=(i == PRISMATIC_JOINT))
            for i in range(N_JOINTS)
        ]
        return cls(links=tuple(links), gripper_jaw_length=GRIPPER_JAW_LENGTH)

    @classmethod
    def from_rows(cls, rows: Iterable[dict], gripper_jaw_length: float = GRIPPER_JAW_LENGTH) -> "DHParameterSet":
        """Build a table from mappings with DHLink field names (e.g. parsed YAML)."""
        try:
            links = tuple(DHLink(**row) for row in rows)
        except TypeError as e:
            raise ConfigurationError(f"Invalid DH parameter row: {e}")
        return cls(links=links, gripper_jaw_length=float(gripper_jaw_length))

    def replace_link(self, index: int, **changes) -> "DHParameterSet":
        links = list(self.links)
        links[index] = replace(links[index], **changes)
        return DHParameterSet(links=tuple(links), gripper_jaw_length=self.gripper_jaw_length)

    def to_rows(self):
        return [
            {"a": l.a, "d": l.d, "alpha": l.alpha, "q_offset": l.q_offset,
             "q_min": l.q_min, "q_max": l.q_max,
             "prismatic": l.prismatic, "continuous": l.continuous}
            for l in self.links
        ]

    @property
    def wrist_offset(self) -> float:
        """a5: distance from the wrist-bend axis to the jaw-rotation axis."""
        return self.links[4].a

    @property
    def q_offsets(self) -> np.ndarray:
        return self._readonly([l.q_offset for l in self.links])

    @property
    def joint_limits(self) -> np.ndarray:
        """2x7 array, row 0 lower limits, row 1 upper limits."""
        return self._readonly([[l.q_min for l in self.links],
                               [l.q_max for l in self.links]])

    @staticmethod
    def _readonly(values) -> np.ndarray:
        arr = np.array(values, dtype=float)
        arr.setflags(write=False)
        return arr
