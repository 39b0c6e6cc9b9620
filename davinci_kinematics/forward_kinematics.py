"""
Forward kinematics for the da Vinci patient-side manipulator.

Frames are built from the DH table in dh_definitions. The tip pose is
expressed in the manipulator base frame, whose origin is the remote centre
of motion. FK is used by the IK solver as a verification oracle.
"""

import logging
from typing import List, Tuple

import numpy as np

from .dh_definitions import DHParameterSet, N_JOINTS
from .transforms import make_pose, rot_z

logger = logging.getLogger(__name__)

# frame 0 w/rt base: x0 along +z (insertion direction at zero yaw/pitch),
# y0 along +x, z0 (outer yaw axis) along +y
R_FRAME0_WRT_BASE = np.array([[0.0, 1.0, 0.0],
                              [0.0, 0.0, 1.0],
                              [1.0, 0.0, 0.0]])


def dh_transform(a: float, d: float, alpha: float, theta: float) -> np.ndarray:
    """
    Compute the DH transformation matrix.
    T = Rot(Z, theta) * Trans(Z, d) * Trans(X, a) * Rot(X, alpha)
    """
    ct, st = np.cos(theta), np.sin(theta)
    ca, sa = np.cos(alpha), np.sin(alpha)
    return np.array([
        [ct, -st * ca, st * sa, a * ct],
        [st, ct * ca, -ct * sa, a * st],
        [0.0, sa, ca, d],
        [0.0, 0.0, 0.0, 1.0]
    ])


class ForwardKinematics:
    """Forward kinematics of the 7-joint chain plus the gripper-tip frame."""

    def __init__(self, dh_params: DHParameterSet = None):
        self.dh = dh_params if dh_params is not None else DHParameterSet.default()
        self.affine_frame0_wrt_base = make_pose(R_FRAME0_WRT_BASE, np.zeros(3))
        # tip x-axis anti-parallel to the jaw-rotation axis (z5 = y6),
        # tip z-axis along the jaws
        self.affine_gripper_wrt_frame6 = make_pose(
            rot_z(-np.pi / 2), [0.0, 0.0, self.dh.gripper_jaw_length])

    def _check_qvec(self, q) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        if q.ndim != 1 or q.shape[0] != N_JOINTS:
            raise ValueError(f"Joint vector must have shape ({N_JOINTS},), got {q.shape}")
        return q

    def convert_qvec_to_dh_vec(self, q) -> Tuple[np.ndarray, np.ndarray]:
        """Convert joint_states displacements to DH (theta, d) vectors."""
        q = self._check_qvec(q)
        thetas = np.zeros(N_JOINTS)
        ds = np.zeros(N_JOINTS)
        for i, link in enumerate(self.dh.links):
            if link.prismatic:
                thetas[i] = 0.0
                ds[i] = link.d + q[i] + link.q_offset
            else:
                thetas[i] = q[i] + link.q_offset
                ds[i] = link.d
        return thetas, ds

    def link_transforms(self, q) -> List[np.ndarray]:
        """Transforms of frame i w/rt frame i-1, for i = 1..7."""
        thetas, ds = self.convert_qvec_to_dh_vec(q)
        return [dh_transform(link.a, ds[i], link.alpha, thetas[i])
                for i, link in enumerate(self.dh.links)]

    def frames(self, q) -> List[np.ndarray]:
        """Frames 1..7 w/rt the base frame."""
        T = self.affine_frame0_wrt_base
        products = []
        for A in self.link_transforms(q):
            T = T @ A
            products.append(T)
        return products

    def get_frame(self, q, index: int) -> np.ndarray:
        """Frame `index` (1..7) w/rt base; index 0 is the fixed frame 0."""
        if index == 0:
            return self.affine_frame0_wrt_base.copy()
        if not 1 <= index <= N_JOINTS:
            raise ValueError(f"Frame index must be in [0, {N_JOINTS}], got {index}")
        return self.frames(q)[index - 1]

    def fwd_kin_solve(self, q) -> np.ndarray:
        """Gripper-tip pose w/rt base.

        The jaw-opening joint opens the jaws symmetrically about the tip
        frame, so the tip is attached to frame 6.
        """
        return self.frames(q)[5] @ self.affine_gripper_wrt_frame6

    forward = fwd_kin_solve

    def compute_fk_wrist(self, q123) -> np.ndarray:
        """Wrist point (O3 = O4) w/rt base from the first three joints."""
        q123 = np.asarray(q123, dtype=float)
        if q123.shape != (3,):
            raise ValueError(f"Expected 3 joint values, got shape {q123.shape}")
        q = np.zeros(N_JOINTS)
        q[:3] = q123
        return self.frames(q)[2][:3, 3]

    forward_partial = compute_fk_wrist

    def home_pose(self) -> np.ndarray:
        return self.fwd_kin_solve(np.zeros(N_JOINTS))
