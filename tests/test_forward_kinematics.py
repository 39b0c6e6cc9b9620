import numpy as np
import pytest

from davinci_kinematics.dh_definitions import DHParameterSet, INSERTION_OFFSET
from davinci_kinematics.forward_kinematics import ForwardKinematics, dh_transform
from davinci_kinematics.transforms import is_valid_se3

pytestmark = pytest.mark.kinematics


@pytest.fixture(scope="module")
def fk():
    return ForwardKinematics()


Q_GENERIC = np.array([0.3, -0.25, 0.12, 0.9, -0.4, 0.7, 0.3])


class TestDHTransform:

    def test_zero_parameters_give_identity(self):
        assert np.allclose(dh_transform(0.0, 0.0, 0.0, 0.0), np.eye(4))

    def test_translation_components(self):
        T = dh_transform(0.5, 0.2, np.pi / 2, np.pi / 2)
        # a along the rotated x-axis, d along z
        assert np.allclose(T[:3, 3], [0.0, 0.5, 0.2])
        assert is_valid_se3(T)


class TestForwardKinematics:

    def test_home_pose(self, fk):
        """At zero displacement the jaws point along +z, just past the remote centre."""
        T = fk.home_pose()
        expected_R = np.array([[0.0, 1.0, 0.0],
                               [-1.0, 0.0, 0.0],
                               [0.0, 0.0, 1.0]])
        tip_z = -INSERTION_OFFSET + fk.dh.wrist_offset + fk.dh.gripper_jaw_length
        assert np.allclose(T[:3, :3], expected_R, atol=1e-12)
        assert np.allclose(T[:3, 3], [0.0, 0.0, tip_z], atol=1e-12)

    def test_frames_are_rigid(self, fk):
        for T in fk.frames(Q_GENERIC):
            assert is_valid_se3(T, tol=1e-9)
        assert is_valid_se3(fk.fwd_kin_solve(Q_GENERIC), tol=1e-9)

    def test_wrist_lies_on_shaft(self, fk):
        frames = fk.frames(Q_GENERIC)
        d3 = Q_GENERIC[2] - INSERTION_OFFSET
        wrist = fk.compute_fk_wrist(Q_GENERIC[:3])
        assert np.allclose(wrist, frames[2][:3, 3])
        assert np.allclose(wrist, d3 * frames[1][:3, 2], atol=1e-12)
        assert np.allclose(frames[3][:3, 3], wrist, atol=1e-12)

    def test_wrist_offset_between_axes(self, fk):
        frames = fk.frames(Q_GENERIC)
        O4, O5 = frames[3][:3, 3], frames[4][:3, 3]
        assert np.linalg.norm(O5 - O4) == pytest.approx(fk.dh.wrist_offset)
        assert np.allclose(O5 - O4, fk.dh.wrist_offset * frames[4][:3, 0])
        # wrist-bend axis is perpendicular to the shaft
        assert abs(np.dot(frames[3][:3, 2], frames[2][:3, 2])) < 1e-12

    def test_tip_axes(self, fk):
        frames = fk.frames(Q_GENERIC)
        T = fk.fwd_kin_solve(Q_GENERIC)
        # tip x-axis is anti-parallel to the jaw-rotation axis
        assert np.allclose(T[:3, 0], -frames[4][:3, 2], atol=1e-12)
        O5 = frames[4][:3, 3]
        assert np.allclose(T[:3, 3], O5 + fk.dh.gripper_jaw_length * T[:3, 2], atol=1e-12)

    def test_jaw_opening_does_not_move_tip(self, fk):
        q_closed = Q_GENERIC.copy()
        q_closed[6] = 0.0
        q_open = Q_GENERIC.copy()
        q_open[6] = 1.2
        assert np.allclose(fk.fwd_kin_solve(q_closed), fk.fwd_kin_solve(q_open))
        assert not np.allclose(fk.frames(q_closed)[6], fk.frames(q_open)[6])

    def test_insertion_moves_tip_along_shaft(self, fk):
        delta = 0.01
        q_deeper = Q_GENERIC.copy()
        q_deeper[2] += delta
        shaft = fk.frames(Q_GENERIC)[2][:3, 2]
        moved = fk.fwd_kin_solve(q_deeper)[:3, 3] - fk.fwd_kin_solve(Q_GENERIC)[:3, 3]
        assert np.allclose(moved, delta * shaft, atol=1e-12)

    def test_get_frame(self, fk):
        frames = fk.frames(Q_GENERIC)
        assert np.allclose(fk.get_frame(Q_GENERIC, 0), fk.affine_frame0_wrt_base)
        assert np.allclose(fk.get_frame(Q_GENERIC, 7), frames[6])
        with pytest.raises(ValueError):
            fk.get_frame(Q_GENERIC, 8)

    def test_dh_vector_conversion(self, fk):
        thetas, ds = fk.convert_qvec_to_dh_vec(Q_GENERIC)
        assert thetas[2] == 0.0
        assert ds[2] == pytest.approx(Q_GENERIC[2] - INSERTION_OFFSET)
        assert thetas[3] == pytest.approx(Q_GENERIC[3] + np.pi)

    @pytest.mark.parametrize("q", [np.zeros(6), np.zeros(8), np.zeros((7, 1))])
    def test_bad_joint_vector_raises(self, fk, q):
        with pytest.raises(ValueError):
            fk.fwd_kin_solve(q)

    def test_custom_table(self):
        dh = DHParameterSet.default().replace_link(2, q_offset=0.1, q_min=-0.05)
        T = ForwardKinematics(dh).home_pose()
        assert T[2, 3] == pytest.approx(0.1 + dh.wrist_offset + dh.gripper_jaw_length)
