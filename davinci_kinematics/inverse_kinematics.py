"""
Closed-form inverse kinematics for the da Vinci patient-side manipulator.

The desired gripper-tip pose is decomposed into:
  1. the wrist point (O4) and wrist-bend axis (z4), which carry a two-way
     sign ambiguity (WristSign.A / WristSign.B),
  2. outer yaw, outer pitch and insertion from the wrist point,
  3. tool roll, wrist bend and jaw rotation from the residual orientation,
  4. the jaw-opening joint, which does not move the tip frame.

Each wrist candidate is carried through the whole pipeline independently;
every candidate that survives the geometric checks and the joint limits is
returned, verified against forward kinematics.

NOTE: poses must be expressed in the manipulator base frame (origin at the
remote centre of motion), not in a camera frame.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from numpy.linalg import norm

from .dh_definitions import DHParameterSet, DHLink, N_JOINTS, PRISMATIC_JOINT
from .error_handling import ConfigurationError, DavinciKinematicsError, IKErrorCode
from .forward_kinematics import ForwardKinematics
from .transforms import is_valid_se3, pose_error, unit

logger = logging.getLogger(__name__)

# alpha values the closed-form solution is derived for
_EXPECTED_ALPHAS = (math.pi / 2, math.pi / 2, 0.0, math.pi / 2, -math.pi / 2, math.pi / 2)
# below this the jaw-rotation axis passes through the remote centre
_DEGENERATE_DISTANCE = 1e-12


class WristSign(Enum):
    A = 1
    B = -1


@dataclass(frozen=True)
class WristCandidate:
    """One of the two wrist configurations compatible with a tip pose."""
    sign: WristSign
    wrist_point: np.ndarray     # O4, on the tool shaft
    z_axis: np.ndarray          # z4, wrist-bend axis
    offset_axis: np.ndarray     # x5, unit vector from O4 towards the jaw-rotation axis
    jaw_point: np.ndarray       # O5 = O6, on the jaw-rotation axis
    jaw_axis_distance: float    # |z5 x O5|, distance of the jaw-rotation axis from the base origin


@dataclass(frozen=True)
class IKSolution:
    q: np.ndarray
    sign: WristSign
    position_error: float
    rotation_error: float


@dataclass(frozen=True)
class IKResult:
    """Either one or two accepted solutions, or the error that rejected them all."""
    solutions: Tuple[IKSolution, ...] = ()
    error: Optional[IKErrorCode] = None
    branch_codes: Tuple[Tuple[WristSign, IKErrorCode], ...] = ()

    @property
    def success(self) -> bool:
        return len(self.solutions) > 0

    @property
    def n_solutions(self) -> int:
        return len(self.solutions)

    @property
    def code(self) -> int:
        """Number of solutions, or the negative error code."""
        if self.success:
            return self.n_solutions
        return self.error.value

    def get_soln(self, index: int = 0) -> np.ndarray:
        if not self.success:
            raise DavinciKinematicsError(
                f"No IK solution ({self.error.name}: {self.error.description})")
        return self.solutions[index].q.copy()

    def to_list(self, index: int = 0) -> List[float]:
        return [float(v) for v in self.get_soln(index)]

    def _error_for(self, sign: WristSign) -> Optional[float]:
        for soln in self.solutions:
            if soln.sign is sign:
                return soln.position_error
        return None

    @property
    def error_l(self) -> Optional[float]:
        """Position residual of the sign-A solution (None if rejected)."""
        return self._error_for(WristSign.A)

    @property
    def error_r(self) -> Optional[float]:
        """Position residual of the sign-B solution (None if rejected)."""
        return self._error_for(WristSign.B)


class DavinciInverseKinematics:
    """Closed-form IK for the 7-joint da Vinci arm.

    Holds a ForwardKinematics instance, used to build intermediate frames and
    to verify every accepted solution. The DH table is immutable, and no
    per-call state is stored on the instance.
    """

    def __init__(
        self,
        dh_params: Optional[DHParameterSet] = None,
        forward_kinematics: Optional[ForwardKinematics] = None,
        limit_tolerance: float = 1e-9,
        verification_tolerance: float = 1e-6,
        pose_tolerance: float = 1e-6,
        jaw_opening: float = 0.0,
    ):
        if forward_kinematics is None:
            forward_kinematics = ForwardKinematics(dh_params)
        elif dh_params is not None and dh_params != forward_kinematics.dh:
            raise ConfigurationError("dh_params differ from the forward kinematics DH table")
        self.fwd = forward_kinematics
        self.dh = self.fwd.dh
        self._validate_chain(self.dh)

        self.limit_tolerance = float(limit_tolerance)
        self.verification_tolerance = float(verification_tolerance)
        self.pose_tolerance = float(pose_tolerance)
        self.jaw_opening = float(jaw_opening)

        self.a5 = self.dh.wrist_offset
        self.gripper_jaw_length = self.dh.gripper_jaw_length
        self.q_offsets = self.dh.q_offsets
        self.joint_limits = self.dh.joint_limits

        logger.info(f"da Vinci IK initialized (a5={self.a5:.4f} m, "
                    f"jaw length={self.gripper_jaw_length:.4f} m)")

    @classmethod
    def from_config(cls, config) -> "DavinciInverseKinematics":
        return cls(config.dh_parameters(), **config.get_solver_params())

    @staticmethod
    def _validate_chain(dh: DHParameterSet):
        """The closed form assumes the da Vinci link structure; check it."""
        prismatic = [i for i, link in enumerate(dh.links) if link.prismatic]
        if prismatic != [PRISMATIC_JOINT]:
            raise ConfigurationError(
                f"Joint {PRISMATIC_JOINT} must be the only prismatic joint, got {prismatic}")
        if not dh.wrist_offset > 0.0:
            raise ConfigurationError(
                f"Wrist offset a5 must be positive, got {dh.wrist_offset}")
        for i, link in enumerate(dh.links[:6]):
            if i != 4 and abs(link.a) > 1e-12:
                raise ConfigurationError(f"Link {i} must have a = 0, got {link.a}")
            if abs(link.d) > 1e-12:
                raise ConfigurationError(f"Link {i} must have d = 0, got {link.d}")
            if abs(link.alpha - _EXPECTED_ALPHAS[i]) > 1e-9:
                raise ConfigurationError(
                    f"Link {i} must have alpha = {_EXPECTED_ALPHAS[i]:.6f}, got {link.alpha}")

    def _check_pose(self, desired_hand_pose) -> np.ndarray:
        pose = np.array(desired_hand_pose, dtype=float)
        if pose.shape != (4, 4):
            raise ValueError(f"Desired pose must be a 4x4 matrix, got shape {pose.shape}")
        if not is_valid_se3(pose, tol=self.pose_tolerance):
            raise ValueError("Desired pose is not a valid rigid transform")
        return pose

    # ------------------------- wrist point -------------------------

    def compute_w_from_tip(self, affine_gripper_tip: np.ndarray) -> Tuple[WristCandidate, WristCandidate]:
        """Both wrist candidates for a gripper-tip pose.

        The tip x-axis is anti-parallel to the jaw-rotation axis z5, and O5
        sits one jaw length behind the tip along the tip z-axis. O4 lies a5
        from O5 along -x5, where x5 is perpendicular to z5 and the shaft
        (through the base origin and O4) must be perpendicular to z4. That
        forces x5 = +/- the unit component of O5 normal to z5.
        """
        R = affine_gripper_tip[:3, :3]
        tip_pos = affine_gripper_tip[:3, 3]
        x_vec_tip, z_vec_tip = R[:, 0], R[:, 2]

        O5 = tip_pos - self.gripper_jaw_length * z_vec_tip
        z5 = -x_vec_tip
        O5_perp = O5 - np.dot(O5, z5) * z5
        mag_z5xO5 = float(norm(np.cross(z5, O5)))
        u = unit(O5_perp, eps=_DEGENERATE_DISTANCE)

        candidates = []
        for sign in (WristSign.A, WristSign.B):
            x5 = sign.value * u
            candidates.append(WristCandidate(
                sign=sign,
                wrist_point=O5 - self.a5 * x5,
                z_axis=-np.cross(z5, x5),
                offset_axis=x5,
                jaw_point=O5,
                jaw_axis_distance=mag_z5xO5,
            ))
        return candidates[0], candidates[1]

    # ------------------------- joints 1-3 -------------------------

    def q123_from_wrist(self, wrist_pt: np.ndarray) -> Tuple[Optional[np.ndarray], IKErrorCode]:
        """Outer yaw, outer pitch and insertion for a wrist point w/rt base.

        The shaft passes through the base origin, so O4 = d3 * z2 with
        z2 = (c1 s2, s1 s2, -c2) in frame 0. Single branch: the wrist must
        be in front of the remote centre, which keeps theta1 in (-pi/2, pi/2).
        """
        if wrist_pt[2] <= 0.0:
            return None, IKErrorCode.WRIST_BEHIND_BASE

        w0 = self.fwd.affine_frame0_wrt_base[:3, :3].T @ wrist_pt
        theta1 = math.atan2(w0[1], w0[0])
        theta2 = math.atan2(math.hypot(w0[0], w0[1]), -w0[2])
        d3 = float(norm(wrist_pt))

        insertion = self.dh.links[PRISMATIC_JOINT]
        q123 = np.array([
            theta1 - self.q_offsets[0],
            theta2 - self.q_offsets[1],
            d3 - insertion.d - insertion.q_offset,
        ])
        return q123, IKErrorCode.SUCCESS

    # ------------------------- joints 4-7 -------------------------

    def compute_q456(self, q123: np.ndarray, candidate: WristCandidate,
                     desired_hand_pose: np.ndarray,
                     jaw_opening: float = 0.0) -> Tuple[Optional[np.ndarray], IKErrorCode]:
        """Tool roll, wrist bend and jaw rotation for one wrist candidate.

        Returns a full joint vector with q[:3] = q123 and q[6] = jaw_opening.
        """
        R_des = desired_hand_pose[:3, :3]
        y_vec_tip, z_vec_tip = R_des[:, 1], R_des[:, 2]

        q = np.zeros(N_JOINTS)
        q[:3] = q123
        q[6] = jaw_opening

        frame3 = self.fwd.frames(q)[2]
        z3 = frame3[:3, 2]

        # jaws must not point back towards the remote centre
        projection_gripper_zvec_onto_return_vec = float(np.dot(z_vec_tip, -z3))
        if projection_gripper_zvec_onto_return_vec > 0.0:
            return None, IKErrorCode.GRIPPER_PROJECTION_WRONG_SIGN
        # x5 is undefined when z5 passes through the base origin
        if candidate.jaw_axis_distance < _DEGENERATE_DISTANCE:
            return None, IKErrorCode.WRIST_OFFSET_INCONSISTENT

        # z4 = R3 * (sin(theta4), -cos(theta4), 0)
        z4_wrt_3 = frame3[:3, :3].T @ candidate.z_axis
        theta4 = math.atan2(z4_wrt_3[0], -z4_wrt_3[1])
        q[3] = theta4 - self.q_offsets[3]

        # x5 = R4 * (cos(theta5), sin(theta5), 0)
        R4 = self.fwd.frames(q)[3][:3, :3]
        x5_wrt_4 = R4.T @ candidate.offset_axis
        theta5 = math.atan2(x5_wrt_4[1], x5_wrt_4[0])
        q[4] = theta5 - self.q_offsets[4]

        # x6 is the tip y-axis
        R5 = self.fwd.frames(q)[4][:3, :3]
        x6_wrt_5 = R5.T @ y_vec_tip
        theta6 = math.atan2(x6_wrt_5[1], x6_wrt_5[0])
        q[5] = theta6 - self.q_offsets[5]

        return q, IKErrorCode.SUCCESS

    # ------------------------- joint limits -------------------------

    def fit_q_to_range(self, link: DHLink, q: float) -> Tuple[float, bool]:
        """Wrap a joint value into its range; True if it fits.

        Bounded revolute joints are shifted by multiples of 2*pi, continuous
        joints are wrapped into [-pi, pi) and always fit, prismatic joints
        are only range-checked. Values within the tolerance are clamped.
        """
        if not math.isfinite(q):
            return q, False
        tol = self.limit_tolerance
        if link.prismatic:
            ok = link.q_min - tol <= q <= link.q_max + tol
        elif link.continuous:
            return (q + math.pi) % (2 * math.pi) - math.pi, True
        else:
            if not link.q_min - tol <= q <= link.q_max + tol:
                q = link.q_min + (q - link.q_min) % (2 * math.pi)
                if q > link.q_max + tol and q - 2 * math.pi >= link.q_min - tol:
                    q -= 2 * math.pi
            ok = link.q_min - tol <= q <= link.q_max + tol
        if ok:
            q = min(max(q, link.q_min), link.q_max)
        return q, ok

    def fit_joints_to_range(self, qvec: np.ndarray) -> Tuple[np.ndarray, bool]:
        """Fit every joint; the returned vector is a copy."""
        fitted = np.array(qvec, dtype=float)
        for i, link in enumerate(self.dh.links):
            fitted[i], ok = self.fit_q_to_range(link, float(fitted[i]))
            if not ok:
                logger.debug(f"Joint {i} value {qvec[i]:.6f} outside "
                             f"[{link.q_min}, {link.q_max}]")
                return fitted, False
        return fitted, True

    # ------------------------- orchestration -------------------------

    def _solve_candidate(self, candidate: WristCandidate, pose: np.ndarray,
                         jaw_opening: float) -> Tuple[Optional[np.ndarray], IKErrorCode]:
        q123, code = self.q123_from_wrist(candidate.wrist_point)
        if code is not IKErrorCode.SUCCESS:
            return None, code

        wrist_err = norm(self.fwd.compute_fk_wrist(q123) - candidate.wrist_point)
        logger.debug(f"Wrist {candidate.sign.name}: q123={np.round(q123, 6)}, "
                     f"FK wrist error={wrist_err:.3e}")

        qvec, code = self.compute_q456(q123, candidate, pose, jaw_opening)
        if code is not IKErrorCode.SUCCESS:
            return None, code

        qvec, within_limits = self.fit_joints_to_range(qvec)
        if not within_limits:
            return None, IKErrorCode.JOINT_OUT_OF_RANGE
        return qvec, IKErrorCode.SUCCESS

    def ik_solve(self, desired_hand_pose, jaw_opening: Optional[float] = None) -> IKResult:
        """
        Solve IK for a gripper-tip pose w/rt the base frame.

        Args:
            desired_hand_pose: 4x4 homogeneous transform
            jaw_opening: value for the jaw joint (defaults to the solver's)

        Returns:
            IKResult with up to two solutions (sign A first), or the error
            code of the sign-A branch when no candidate survives.
        """
        pose = self._check_pose(desired_hand_pose)
        jaw = self.jaw_opening if jaw_opening is None else float(jaw_opening)

        if pose[2, 3] <= 0.0:
            logger.debug(f"Tip z = {pose[2, 3]:.6f} is not positive")
            return IKResult(error=IKErrorCode.TIP_Z_NOT_POSITIVE)

        solutions = []
        branch_codes = []
        for candidate in self.compute_w_from_tip(pose):
            qvec, code = self._solve_candidate(candidate, pose, jaw)
            branch_codes.append((candidate.sign, code))
            if code is not IKErrorCode.SUCCESS:
                logger.debug(f"Wrist {candidate.sign.name} rejected: {code.name}")
                continue

            pos_err, rot_err = pose_error(pose, self.fwd.fwd_kin_solve(qvec))
            if pos_err > self.verification_tolerance or rot_err > self.verification_tolerance:
                logger.warning(f"Wrist {candidate.sign.name} FK check exceeds tolerance: "
                               f"pos_err={pos_err:.3e}, rot_err={rot_err:.3e}")
            qvec.setflags(write=False)
            solutions.append(IKSolution(q=qvec, sign=candidate.sign,
                                        position_error=pos_err, rotation_error=rot_err))

        if not solutions:
            return IKResult(error=branch_codes[0][1], branch_codes=tuple(branch_codes))
        return IKResult(solutions=tuple(solutions), branch_codes=tuple(branch_codes))

    solve = ik_solve

    def compute_ik_solution(self, g_in) -> List[float]:
        """First solution as a plain list; empty when there is none."""
        result = self.ik_solve(g_in)
        if not result.success:
            return []
        return result.to_list()
