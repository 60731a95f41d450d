"""动作状态机测试。"""
import pytest

from app.core.exceptions import InvalidStateTransitionError
from app.services.action_fsm import can_transition, guard, is_terminal, valid_targets


class TestTransitions:
    def test_happy_paths(self):
        guard("queued", "running")
        guard("running", "succeeded")
        guard("running", "failed")

    @pytest.mark.parametrize("src,dst", [
        ("queued", "succeeded"), ("queued", "failed"), ("running", "queued"),
        ("succeeded", "running"), ("failed", "queued"), ("succeeded", "failed"),
        ("running", "running"), ("unknown", "running"),
    ])
    def test_illegal_transitions(self, src, dst):
        assert can_transition(src, dst) is False
        with pytest.raises(InvalidStateTransitionError):
            guard(src, dst)

    def test_terminal_states_have_no_targets(self):
        for status in ("succeeded", "failed"):
            assert is_terminal(status)
            assert valid_targets(status) == frozenset()
        assert not is_terminal("queued")
        assert not is_terminal("running")
