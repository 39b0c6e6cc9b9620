"""
Closed-form inverse kinematics for the da Vinci patient-side manipulator.
"""

__version__ = "0.1.0"

from .dh_definitions import DHLink, DHParameterSet
from .error_handling import ConfigurationError, DavinciKinematicsError, IKErrorCode
from .forward_kinematics import ForwardKinematics
from .inverse_kinematics import (
    DavinciInverseKinematics,
    IKResult,
    IKSolution,
    WristCandidate,
    WristSign,
)
from .config import KinematicsConfig

__all__ = [
    "DHLink",
    "DHParameterSet",
    "ConfigurationError",
    "DavinciKinematicsError",
    "IKErrorCode",
    "ForwardKinematics",
    "DavinciInverseKinematics",
    "IKResult",
    "IKSolution",
    "WristCandidate",
    "WristSign",
    "KinematicsConfig",
]
