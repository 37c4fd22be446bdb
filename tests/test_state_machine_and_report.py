"""
状态机与报告汇总测试。
"""

from __future__ import annotations

import pytest

from dag.report import aggregate_report, new_session_id, summarize
from dag.state_machine import VALID_TRANSITIONS, InvalidTransitionError, ItemStateMachine
from schema import AgentType, ExecutionResult, ItemStatus, WorkItem


def _result(item_id: str, status: ItemStatus) -> ExecutionResult:
    return ExecutionResult(item_id=item_id, status=status, agent_type=AgentType.CODEGEN)


class TestItemStateMachine:

    def test_happy_path(self):
        transitions: list[tuple[str, ItemStatus, ItemStatus]] = []
        sm = ItemStateMachine(on_transition=lambda *args: transitions.append(args))
        item = WorkItem(id="a")

        sm.transition(item, ItemStatus.RUNNING)
        sm.transition(item, ItemStatus.COMPLETED)

        assert item.status == ItemStatus.COMPLETED
        assert transitions == [
            ("a", ItemStatus.PENDING, ItemStatus.RUNNING),
            ("a", ItemStatus.RUNNING, ItemStatus.COMPLETED),
        ]

    def test_pending_can_be_blocked(self):
        sm = ItemStateMachine()
        item = WorkItem(id="a")
        sm.transition(item, ItemStatus.BLOCKED)
        assert item.status == ItemStatus.BLOCKED

    @pytest.mark.parametrize("status", sorted(ItemStatus.terminal(), key=lambda s: s.value))
    def test_terminal_states_are_final(self, status):
        sm = ItemStateMachine()
        item = WorkItem(id="a", status=status)
        for target in ItemStatus:
            assert not sm.can_transition(item, target)
        with pytest.raises(InvalidTransitionError):
            sm.transition(item, ItemStatus.RUNNING)

    def test_running_cannot_be_blocked(self):
        sm = ItemStateMachine()
        item = WorkItem(id="a", status=ItemStatus.RUNNING)
        with pytest.raises(InvalidTransitionError):
            sm.transition(item, ItemStatus.BLOCKED)
        assert item.status == ItemStatus.RUNNING

    def test_pending_cannot_complete_directly(self):
        with pytest.raises(InvalidTransitionError):
            ItemStateMachine().transition(WorkItem(id="a"), ItemStatus.COMPLETED)

    def test_table_covers_every_status(self):
        assert set(VALID_TRANSITIONS) == set(ItemStatus)

    def test_callback_errors_are_ignored(self):
        def boom(*_):
            raise RuntimeError("ui")

        item = WorkItem(id="a")
        ItemStateMachine(on_transition=boom).transition(item, ItemStatus.RUNNING)
        assert item.status == ItemStatus.RUNNING


class TestReportAggregation:

    def test_counts_and_success_rate(self):
        results = [
            _result("a", ItemStatus.COMPLETED),
            _result("b", ItemStatus.FAILED),
            _result("c", ItemStatus.COMPLETED),
            _result("d", ItemStatus.BLOCKED),
            _result("e", ItemStatus.ESCALATED),
        ]
        summary = summarize(results)
        assert summary.total == 5
        assert (summary.completed, summary.failed, summary.escalated, summary.blocked) == (2, 1, 1, 1)
        assert summary.success_rate == pytest.approx(40.0)

    def test_empty_results(self):
        summary = summarize([])
        assert summary.total == 0
        assert summary.success_rate == 0.0

    def test_report_keeps_result_order(self):
        results = [_result("z", ItemStatus.COMPLETED), _result("a", ItemStatus.COMPLETED)]
        report = aggregate_report("session-1", 100.0, 101.25, results)

        assert [r.item_id for r in report.tasks] == ["z", "a"]
        assert report.total_duration_ms == 1250
        assert report.summary.success_rate == 100.0
        assert report.cancelled is False

    def test_report_serializes_to_json_friendly_dict(self):
        report = aggregate_report("session-1", 0.0, 0.5, [_result("a", ItemStatus.FAILED)])
        data = report.to_dict()
        assert data["tasks"][0]["status"] == "failed"
        assert data["tasks"][0]["agent_type"] == "codegen"
        assert data["summary"]["failed"] == 1

    def test_session_id_prefix(self, monkeypatch):
        import config
        monkeypatch.setattr(config, "SESSION_ID_PREFIX", "nightly")
        assert new_session_id().startswith("nightly-")
