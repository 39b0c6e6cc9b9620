"""Logging and timing of IK solve attempts."""

import logging
import time
from contextlib import contextmanager

import numpy as np

from .inverse_kinematics import IKResult


class KinematicsMonitor:
    def __init__(self, logger_name: str = "davinci_kinematics"):
        self.logger = logging.getLogger(logger_name)
        self.n_attempts = 0
        self.n_failures = 0

    def log_ik_attempt(self, T_des: np.ndarray, result: IKResult, computation_time: float):
        self.n_attempts += 1
        if result.success:
            self.logger.info(f"IK solved in {computation_time:.6f}s with "
                             f"{result.n_solutions} solution(s)")
            for soln in result.solutions:
                self.logger.info(f"  wrist {soln.sign.name}: q={np.round(soln.q, 6)}, "
                                 f"position error: {soln.position_error:.3e}, "
                                 f"rotation error: {soln.rotation_error:.3e}")
        else:
            self.n_failures += 1
            self.logger.warning(f"IK failed for tip position {np.round(T_des[:3, 3], 6)}: "
                                f"{result.error.name} ({result.error.value}) - "
                                f"{result.error.description}")

    @contextmanager
    def timed(self):
        """Yield a dict whose 'elapsed' entry is filled in on exit."""
        timing = {}
        start = time.perf_counter()
        try:
            yield timing
        finally:
            timing["elapsed"] = time.perf_counter() - start

    def solve(self, solver, T_des: np.ndarray, **kwargs) -> IKResult:
        """Run solver.ik_solve and log the outcome."""
        with self.timed() as timing:
            result = solver.ik_solve(T_des, **kwargs)
        self.log_ik_attempt(np.asarray(T_des, dtype=float), result, timing["elapsed"])
        return result
