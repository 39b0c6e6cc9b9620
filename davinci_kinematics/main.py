#!/usr/bin/env python3
"""
Demo entry point: solve IK for a few poses generated by forward kinematics.

Usage: python -m davinci_kinematics.main [config.yaml]
"""

import logging
import sys

import numpy as np

from .config import KinematicsConfig
from .dh_definitions import JOINT_NAMES
from .error_handling import ConfigurationError, validate_joint_limits
from .inverse_kinematics import DavinciInverseKinematics
from .monitoring import KinematicsMonitor

logger = logging.getLogger("davinci_main")

# sample joint vectors (rad, insertion in m), all inside the nominal limits
SAMPLE_JOINTS = [
    np.array([0.0, 0.0, 0.12, 0.0, 0.0, 0.0, 0.0]),
    np.array([0.3, -0.2, 0.15, 0.8, 0.4, -0.3, 0.2]),
    np.array([-0.6, 0.4, 0.08, -1.5, -1.0, 1.1, 0.0]),
]


def setup_logging(config: KinematicsConfig):
    log_cfg = config.get_logging_config()
    logging.basicConfig(
        level=getattr(logging, str(log_cfg.get("level", "INFO")).upper()),
        format=log_cfg.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
    )


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        config = KinematicsConfig(argv[0] if argv else None)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(config)
    solver = DavinciInverseKinematics.from_config(config)
    monitor = KinematicsMonitor()

    n_failed = 0
    for q_test in SAMPLE_JOINTS:
        T_target = solver.fwd.fwd_kin_solve(q_test)
        print("Test joints     :", np.round(q_test, 4))
        print("Tip position (m):", np.round(T_target[:3, 3], 4))

        result = monitor.solve(solver, T_target, jaw_opening=q_test[6])
        if not result.success:
            n_failed += 1
            print(f"No solution: {result.error.name} ({result.code})\n")
            continue
        for soln in result.solutions:
            print(f"  wrist {soln.sign.name}: {np.round(soln.q, 6)} "
                  f"(pos err {soln.position_error:.2e} m, rot err {soln.rotation_error:.2e} rad)")
            within, violations = validate_joint_limits(soln.q, solver.joint_limits)
            if not within:
                print("  joints outside their limits:", [JOINT_NAMES[i] for i in violations])
        print()

    # unreachable: tip behind the remote centre
    T_behind = solver.fwd.fwd_kin_solve(SAMPLE_JOINTS[0])
    T_behind[2, 3] = -0.05
    result = monitor.solve(solver, T_behind)
    print(f"Tip behind remote centre -> {result.error.name} ({result.code})")

    return 0 if n_failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
