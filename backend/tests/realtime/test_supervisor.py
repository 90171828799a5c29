"""Tests for HealthSupervisor."""

import pytest

from app.realtime.models import Channel, ConnectionStatus, TransportMode

from sync_fakes import FakePushFactory, fast_config, make_service, settle


@pytest.mark.asyncio
class TestHealthSupervisor:
    """Tests for the self-healing sweep."""

    async def test_consistent_state_untouched(self, service, push_factory):
        """Test that a healthy service needs no corrections."""
        assert service.supervisor.sweep() == []
        assert service.supervisor.corrections == 0
        assert len(push_factory.connections) == 1

    async def test_dead_poller_restarted(self, service):
        """Test that a pull-mode channel without a poller gets one."""
        service.scheduler.stop_polling(Channel.MOVERS)
        assert not service.is_polling(Channel.MOVERS)

        assert service.supervisor.sweep() == [Channel.MOVERS]
        assert service.is_polling(Channel.MOVERS)
        assert service.supervisor.corrections == 1

    async def test_pull_only_channel_forced_back(self, service):
        """Test that a pull-only channel found in another state is forced to pull."""
        record = service.get_record(Channel.EQUITY_INDEX)
        record.status = ConnectionStatus.DISCONNECTED

        assert service.supervisor.sweep() == [Channel.EQUITY_INDEX]
        assert record.status is ConnectionStatus.PULL_MODE
        assert record.mode is TransportMode.PULL

    async def test_disconnected_push_channel_reconnected(self, service, push_factory):
        """Test that a push channel stuck in disconnected is reconnected."""
        record = service.get_record(Channel.CRYPTO)
        record.status = ConnectionStatus.DISCONNECTED

        assert service.supervisor.sweep() == [Channel.CRYPTO]
        assert len(push_factory.connections) == 2
        assert record.status is ConnectionStatus.CONNECTING

    async def test_connecting_push_channel_left_alone(self, service, push_factory):
        """Test that an in-flight connect is not interrupted."""
        assert service.get_record(Channel.CRYPTO).status is ConnectionStatus.CONNECTING
        service.supervisor.sweep()
        assert len(push_factory.connections) == 1

    async def test_loop_runs_periodically(self):
        """Test that the background loop sweeps on its interval."""
        svc = make_service(factory=FakePushFactory(), config=fast_config(health_interval=0.01))
        await svc.initialize()
        assert svc.supervisor.running

        svc.scheduler.stop_polling(Channel.MOVERS)
        await settle()

        assert svc.is_polling(Channel.MOVERS)
        assert svc.supervisor.corrections >= 1
        await svc.shutdown()
        assert not svc.supervisor.running
