"""
Error codes and exceptions for the da Vinci kinematics package.

Geometric infeasibility is reported through IKErrorCode values carried by
the solver result. Exceptions are only raised for malformed input or bad
configuration.
"""

from enum import Enum
from typing import Tuple

import numpy as np


class DavinciKinematicsError(Exception):
    """Base exception for kinematics-related errors."""
    pass


class ConfigurationError(DavinciKinematicsError):
    """Raised when the DH table or the configuration file is invalid."""
    pass


class IKErrorCode(Enum):
    SUCCESS = 0
    TIP_Z_NOT_POSITIVE = -1
    WRIST_BEHIND_BASE = -2
    GRIPPER_PROJECTION_WRONG_SIGN = -3
    WRIST_OFFSET_INCONSISTENT = -4
    JOINT_OUT_OF_RANGE = -5

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    IKErrorCode.SUCCESS: "solution found",
    IKErrorCode.TIP_Z_NOT_POSITIVE:
        "desired tip position has a non-positive z-component",
    IKErrorCode.WRIST_BEHIND_BASE:
        "wrist point lies behind the remote centre of motion",
    IKErrorCode.GRIPPER_PROJECTION_WRONG_SIGN:
        "gripper z-axis points back towards the remote centre along the tool shaft",
    IKErrorCode.WRIST_OFFSET_INCONSISTENT:
        "jaw-rotation axis passes through the remote centre, so the wrist offset direction is undefined",
    IKErrorCode.JOINT_OUT_OF_RANGE:
        "a solved joint is outside its hardware range",
}


def validate_joint_limits(q, limits, tol=1e-9) -> Tuple[bool, np.ndarray]:
    """Check if joint values are within limits (with a tiny tolerance).

    Args:
        q: joint vector
        limits: (lower, upper) pair of arrays
        tol: allowed overshoot on either side

    Returns:
        (within_limits, indices of violating joints)
    """
    lower, upper = limits
    q = np.asarray(q, dtype=float)
    violations = np.where((q < (np.asarray(lower) - tol)) | (q > (np.asarray(upper) + tol)))[0]
    return len(violations) == 0, violations
