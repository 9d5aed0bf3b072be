"""Tests for the command killer."""

from src.cli.deployment.shell_commands.killer import AbortReason, CommandKiller


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestCommandKiller:
    """Tests for abort decisions."""

    def test_never_aborts(self) -> None:
        """A killer without deadline or predicate never fires."""
        assert CommandKiller.never().should_abort() is None

    def test_timeout_fires_at_deadline(self) -> None:
        """The deadline is measured from construction."""
        clock = FakeClock()
        killer = CommandKiller(30, clock=clock)

        clock.now = 129.9
        assert killer.should_abort() is None
        clock.now = 130.0
        assert killer.should_abort() is AbortReason.TIMEOUT

    def test_cancellation_fires(self) -> None:
        """A cancellation request aborts with CANCELED."""
        cancelled = False
        killer = CommandKiller(is_cancelled=lambda: cancelled)

        assert killer.should_abort() is None
        cancelled = True
        assert killer.should_abort() is AbortReason.CANCELED

    def test_cancellation_wins_over_timeout(self) -> None:
        """When both conditions hold, the abort is reported as cancellation."""
        clock = FakeClock()
        killer = CommandKiller(1, lambda: True, clock=clock)
        clock.now = 200.0

        assert killer.should_abort() is AbortReason.CANCELED
