from unittest.mock import AsyncMock

import pytest

from nlu_studio.events import STATUSBAR_TOPIC, EventBus
from nlu_studio.widgets.train_now import TrainNow

pytestmark = pytest.mark.anyio


def status_event(status, event_type="nlu"):
    return {"type": event_type, "trainSession": {"status": status, "progress": 1.0, "language": "en"}}


@pytest.fixture
def api():
    api = AsyncMock()
    api.is_training.return_value = False
    return api


@pytest.fixture
def bus():
    return EventBus()


async def test_mount_fetches_training_state(api, bus):
    widget = TrainNow(api, bus)
    assert widget.loading

    await widget.mount()

    assert not widget.loading
    assert not widget.training
    assert widget.button.label == "module.nlu.trainNow"
    assert bus.subscriber_count(STATUSBAR_TOPIC) == 1


async def test_mount_when_already_training(api, bus):
    api.is_training.return_value = True
    widget = TrainNow(api, bus)
    await widget.mount()

    assert widget.button.label == "module.nlu.cancelTraining"


async def test_auto_train_label(api, bus):
    widget = TrainNow(api, bus, auto_train=True)
    await widget.mount()
    assert widget.button.label == "module.nlu.retrainAll"


async def test_train_then_done_event_resets(api, bus):
    widget = TrainNow(api, bus)
    await widget.mount()

    await widget.button.on_click()
    api.train.assert_awaited_once()
    assert widget.training
    assert widget.button.label == "module.nlu.cancelTraining"
    assert not widget.button.disabled

    bus.emit(STATUSBAR_TOPIC, status_event("training"))
    assert widget.training

    bus.emit(STATUSBAR_TOPIC, status_event("done"))
    assert not widget.training
    assert widget.button.label == "module.nlu.trainNow"


async def test_cancel_disables_button_until_canceled_event(api, bus):
    widget = TrainNow(api, bus)
    await widget.mount()
    await widget.train()

    await widget.button.on_click()
    api.cancel_training.assert_awaited_once()
    assert widget.cancelling
    assert widget.button.disabled

    bus.emit(STATUSBAR_TOPIC, status_event("canceled"))
    assert not widget.training
    assert not widget.cancelling


async def test_events_of_other_types_are_ignored(api, bus):
    widget = TrainNow(api, bus)
    await widget.mount()
    await widget.train()

    bus.emit(STATUSBAR_TOPIC, status_event("done", event_type="qna"))
    assert widget.training


async def test_train_failure_propagates(api, bus):
    api.train.side_effect = RuntimeError("server down")
    widget = TrainNow(api, bus)
    await widget.mount()

    with pytest.raises(RuntimeError):
        await widget.train()
    assert widget.training


async def test_unmount_releases_subscription(api, bus):
    widget = TrainNow(api, bus)
    await widget.mount()
    await widget.train()

    widget.unmount()
    assert not widget.mounted
    assert bus.subscriber_count(STATUSBAR_TOPIC) == 0

    bus.emit(STATUSBAR_TOPIC, status_event("done"))
    assert widget.training


async def test_canceled_event_during_cancel_request(api, bus):
    widget = TrainNow(api, bus)
    await widget.mount()
    await widget.train()

    async def cancel_and_report():
        bus.emit(STATUSBAR_TOPIC, status_event("canceled"))

    api.cancel_training.side_effect = cancel_and_report
    await widget.cancel_training()

    assert not widget.training
    assert not widget.cancelling

    await widget.train()
    assert widget.button.label == "module.nlu.cancelTraining"
    assert not widget.button.disabled
