import asyncio
import random

import pytest

from core.persistence import FallbackSlot, MemoryStorage, PersistenceBridge
from core.selection_store import SelectionStore
from core.wizard_state import GOAL_INVENTORY, GOAL_PROMOTIONS
from modules.upload import (
    UPLOAD_ERROR,
    UPLOAD_IDLE,
    UPLOAD_SUCCESS,
    UPLOAD_UPLOADING,
    InvalidFileTypeError,
    SimulatedUploadTransport,
    TransferError,
    UploadDialog,
    UploadFile,
    UploadFlowError,
    UploadState,
    artifact_id_for,
    is_csv_file,
)


class RecordingTransport:
    def __init__(self, fail_with=None, gate=None):
        self.calls = []
        self.fail_with = fail_with
        self.gate = gate

    async def upload(self, file, forecast_type):
        self.calls.append((file.name, forecast_type))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise TransferError(self.fail_with)
        return f"artifact-{file.name}"


def _csv(name="sales.csv"):
    return UploadFile(name=name, size=12, content_type="text/csv", data=b"sku,qty\n1,2\n")


def _bridge(storage=None):
    return PersistenceBridge(storage if storage is not None else MemoryStorage(), FallbackSlot())


def test_upload_success_tags_primary_goal():
    bridge = _bridge()
    store = SelectionStore(bridge)
    store.write([GOAL_PROMOTIONS, GOAL_INVENTORY])
    transport = RecordingTransport()
    dialog = UploadDialog(bridge, transport)

    state = asyncio.run(dialog.select_file(_csv()))

    assert state == UploadState.succeeded("artifact-sales.csv")
    assert transport.calls == [("sales.csv", GOAL_PROMOTIONS)]
    assert dialog.tagged_goal == GOAL_PROMOTIONS
    assert dialog.uploaded_file.name == "sales.csv"


def test_upload_uses_durable_slot_without_any_write():
    storage = MemoryStorage({"forecastGoals": '["Replenishment"]'})
    transport = RecordingTransport()
    dialog = UploadDialog(_bridge(storage), transport)

    asyncio.run(dialog.select_file(_csv()))

    assert transport.calls == [("sales.csv", "Replenishment")]


def test_upload_with_no_goal_anywhere_sends_default():
    transport = RecordingTransport()
    dialog = UploadDialog(_bridge(), transport)

    asyncio.run(dialog.select_file(_csv()))

    assert transport.calls == [("sales.csv", "Default")]


def test_transfer_failure_moves_to_error():
    dialog = UploadDialog(_bridge(), RecordingTransport(fail_with="Network error"))

    state = asyncio.run(dialog.select_file(_csv()))

    assert state.status == UPLOAD_ERROR
    assert state.error == "Network error"
    assert state.artifact_ref is None


def test_non_csv_is_rejected_before_any_transition():
    transport = RecordingTransport()
    dialog = UploadDialog(_bridge(), transport)

    with pytest.raises(InvalidFileTypeError):
        asyncio.run(dialog.select_file(UploadFile(name="sales.xlsx", content_type="application/vnd.ms-excel")))

    assert dialog.state.status == UPLOAD_IDLE
    assert dialog.uploaded_file is None
    assert transport.calls == []


def test_retry_resets_to_idle_without_touching_goals():
    bridge = _bridge()
    store = SelectionStore(bridge)
    store.write([GOAL_PROMOTIONS])
    dialog = UploadDialog(bridge, RecordingTransport(fail_with="Network error"))
    asyncio.run(dialog.select_file(_csv()))

    dialog.retry()

    assert dialog.state == UploadState.idle()
    assert dialog.uploaded_file is None
    assert store.read() == [GOAL_PROMOTIONS]


def test_select_file_requires_idle():
    dialog = UploadDialog(_bridge(), RecordingTransport())
    asyncio.run(dialog.select_file(_csv()))

    with pytest.raises(UploadFlowError):
        asyncio.run(dialog.select_file(_csv("again.csv")))


def test_dismiss_refused_while_uploading():
    async def scenario():
        gate = asyncio.Event()
        dialog = UploadDialog(_bridge(), RecordingTransport(gate=gate))
        task = asyncio.create_task(dialog.select_file(_csv()))
        await asyncio.sleep(0)

        assert dialog.state.status == UPLOAD_UPLOADING
        assert dialog.dismiss() is False
        with pytest.raises(UploadFlowError):
            dialog.retry()

        gate.set()
        await task
        return dialog

    dialog = asyncio.run(scenario())
    assert dialog.state.status == UPLOAD_SUCCESS
    assert dialog.dismiss() is True
    assert dialog.is_open is False


def test_result_after_dispose_is_discarded():
    async def scenario():
        gate = asyncio.Event()
        dialog = UploadDialog(_bridge(), RecordingTransport(gate=gate))
        task = asyncio.create_task(dialog.select_file(_csv()))
        await asyncio.sleep(0)

        dialog.dispose()
        gate.set()
        await task
        return dialog

    dialog = asyncio.run(scenario())
    assert dialog.state.status == UPLOAD_UPLOADING
    assert dialog.state.artifact_ref is None


def test_closed_dialog_refuses_files():
    dialog = UploadDialog(_bridge(), RecordingTransport())
    assert dialog.dismiss() is True

    with pytest.raises(UploadFlowError):
        asyncio.run(dialog.select_file(_csv()))


def test_upload_state_variants_are_consistent():
    with pytest.raises(ValueError):
        UploadState(status="done")
    with pytest.raises(ValueError):
        UploadState(status=UPLOAD_SUCCESS)
    with pytest.raises(ValueError):
        UploadState(status=UPLOAD_IDLE, error="oops")


def test_is_csv_file():
    assert is_csv_file(UploadFile(name="a.csv", content_type="text/csv"))
    assert is_csv_file(UploadFile(name="a.txt", content_type="text/csv; charset=utf-8"))
    assert is_csv_file(UploadFile(name="A.CSV"))
    assert not is_csv_file(UploadFile(name="a.csv", content_type="application/pdf"))
    assert not is_csv_file(UploadFile(name="a.xlsx"))


def test_simulated_transport_success_and_failure():
    ok = SimulatedUploadTransport(delay_seconds=0, failure_rate=0.0, rng=random.Random(1))
    artifact = asyncio.run(ok.upload(_csv(), GOAL_PROMOTIONS))
    assert artifact == artifact_id_for(_csv())
    assert artifact.startswith("sales-")

    failing = SimulatedUploadTransport(delay_seconds=0, failure_rate=1.0)
    with pytest.raises(TransferError, match="Network error"):
        asyncio.run(failing.upload(_csv(), GOAL_PROMOTIONS))


def test_simulated_transport_rejects_bad_rate():
    with pytest.raises(ValueError):
        SimulatedUploadTransport(failure_rate=1.5)


def test_upload_file_from_uploaded_object():
    class FakeUploaded:
        name = "history.csv"
        size = 5
        type = "text/csv"

        def getvalue(self):
            return b"a,b\n"

    f = UploadFile.from_uploaded(FakeUploaded())
    assert f.name == "history.csv"
    assert f.size == 5
    assert f.content_type == "text/csv"
    assert f.data == b"a,b\n"


class CrashingTransport:
    def __init__(self, exc):
        self.exc = exc

    async def upload(self, file, forecast_type):
        raise self.exc


def test_unexpected_transport_error_moves_to_error_and_can_retry():
    dialog = UploadDialog(_bridge(), CrashingTransport(ConnectionResetError("socket closed")))

    state = asyncio.run(dialog.select_file(_csv()))

    assert state.status == UPLOAD_ERROR
    assert state.error == "socket closed"
    dialog.retry()
    assert dialog.state.status == UPLOAD_IDLE
    assert dialog.dismiss() is True


def test_unexpected_transport_error_without_message_uses_type_name():
    dialog = UploadDialog(_bridge(), CrashingTransport(OSError()))

    state = asyncio.run(dialog.select_file(_csv()))

    assert state == UploadState.failed("OSError")


def test_cancelled_transfer_returns_to_idle():
    async def scenario():
        gate = asyncio.Event()
        dialog = UploadDialog(_bridge(), RecordingTransport(gate=gate))
        task = asyncio.create_task(dialog.select_file(_csv()))
        await asyncio.sleep(0)
        assert dialog.state.status == UPLOAD_UPLOADING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return dialog

    dialog = asyncio.run(scenario())
    assert dialog.state.status == UPLOAD_IDLE
    assert dialog.uploaded_file is None
    assert dialog.dismiss() is True
