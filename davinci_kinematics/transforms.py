"""Homogeneous-transform helpers shared by the FK and IK modules."""

import numpy as np
from numpy.linalg import norm
from scipy.spatial.transform import Rotation

# ------------------------- Math helpers -------------------------

def rot_z(angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0],
                     [s, c, 0.0],
                     [0.0, 0.0, 1.0]])

def make_pose(R: np.ndarray, p) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = p
    return T

def invert_pose(T: np.ndarray) -> np.ndarray:
    """Exact inverse of a rigid transform: [R^T, -R^T p]."""
    R, p = T[:3, :3], T[:3, 3]
    return make_pose(R.T, -R.T @ p)

def is_valid_se3(T: np.ndarray, tol: float = 1e-6) -> bool:
    """Check shape, bottom row, orthonormality and det(R) = +1."""
    T = np.asarray(T, dtype=float)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return False
    if not np.allclose(T[3], [0.0, 0.0, 0.0, 1.0], atol=tol):
        return False
    R = T[:3, :3]
    if not np.allclose(R.T @ R, np.eye(3), atol=tol):
        return False
    return bool(np.isclose(np.linalg.det(R), 1.0, atol=tol))

def pose_error(T_des: np.ndarray, T_actual: np.ndarray):
    """Position error (m) and orientation error (rad) between two poses."""
    T_err = invert_pose(T_actual) @ T_des
    pos_err = norm(T_actual[:3, 3] - T_des[:3, 3])
    R_err = T_err[:3, :3]
    rot_err = Rotation.from_matrix(R_err).magnitude()
    return float(pos_err), float(rot_err)

def unit(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    n = norm(v)
    if n < eps:
        return np.zeros_like(v, dtype=float)
    return v / n
