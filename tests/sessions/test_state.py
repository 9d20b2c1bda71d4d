"""FusionSession state machine: suggestion race guard, generation gating, reset semantics."""
import asyncio

import pytest

from fusion.services.image_generation import (
    AspectRatio,
    FailureType,
    FusedImage,
    SafetyBlockedError,
    TransportError,
)
from fusion.services.state import (
    STATIC_SUGGESTIONS,
    FusionSession,
    GenerationStatus,
    ImageSlot,
    SessionStore,
    SuggestionsStatus,
    UploadedImage,
)

IMAGE = FusedImage(media_type="image/png", data="aW1n")


def _image(tag: bytes = b"a") -> UploadedImage:
    return UploadedImage.create(b"\x89PNG" + tag, "image/png")


class ControlledFetcher:
    """Async fake whose calls block until released, in any order."""

    def __init__(self, results=None, error: Exception | None = None):
        self.calls: list[tuple] = []
        self.gates: list[asyncio.Event] = []
        self.results = list(results or [])
        self.error = error
        self.auto = True

    async def __call__(self, *args):
        gate = asyncio.Event()
        index = len(self.calls)
        self.calls.append(args)
        self.gates.append(gate)
        if self.auto:
            gate.set()
        await gate.wait()
        if self.error is not None:
            raise self.error
        return self.results[index] if index < len(self.results) else self.results[-1]


def _session(suggestions=None, fusion=None) -> FusionSession:
    return FusionSession(
        suggestion_fetcher=suggestions or ControlledFetcher(results=[["Wear it"]]),
        fusion_fetcher=fusion or ControlledFetcher(results=[IMAGE]),
    )


@pytest.mark.asyncio
async def test_suggestions_start_when_both_images_present():
    fetcher = ControlledFetcher(results=[["Wear it", "Hold it"]])
    session = _session(suggestions=fetcher)
    session.set_image(ImageSlot.CHARACTER, _image())
    assert session.suggestions_status is SuggestionsStatus.IDLE
    assert fetcher.calls == []

    session.set_image("product", _image(b"p"))
    assert session.suggestions_status is SuggestionsStatus.PENDING
    await session.wait_for_suggestions()
    assert session.suggestions_status is SuggestionsStatus.READY
    assert session.suggestions == ["Wear it", "Hold it"]
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_stale_suggestions_are_discarded():
    fetcher = ControlledFetcher(results=[["old pair"], ["new pair"]])
    fetcher.auto = False
    session = _session(suggestions=fetcher)
    session.set_image(ImageSlot.CHARACTER, _image(b"1"))
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    await asyncio.sleep(0)
    # Replace the character while the first fetch is still pending
    session.set_image(ImageSlot.CHARACTER, _image(b"2"))
    await asyncio.sleep(0)
    assert len(fetcher.calls) == 2

    fetcher.gates[1].set()
    await session.wait_for_suggestions()
    assert session.suggestions == ["new pair"]

    fetcher.gates[0].set()
    for _ in range(5):
        await asyncio.sleep(0)
    assert session.suggestions == ["new pair"]
    assert session.suggestions_status is SuggestionsStatus.READY


@pytest.mark.asyncio
async def test_image_change_clears_previous_suggestions():
    fetcher = ControlledFetcher(results=[["first"], ["second"]])
    session = _session(suggestions=fetcher)
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    await session.wait_for_suggestions()
    assert session.suggestions == ["first"]

    fetcher.auto = False
    session.set_image(ImageSlot.PRODUCT, _image(b"q"))
    assert session.dynamic_suggestions == []
    assert session.suggestions == list(STATIC_SUGGESTIONS)
    await asyncio.sleep(0)
    assert len(fetcher.gates) == 2
    fetcher.gates[1].set()
    await session.wait_for_suggestions()
    assert session.suggestions == ["second"]


@pytest.mark.asyncio
async def test_suggestion_failure_degrades_to_static_list():
    session = _session(suggestions=ControlledFetcher(error=TransportError("offline")))
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    await session.wait_for_suggestions()
    assert session.suggestions_status is SuggestionsStatus.FAILED
    assert session.suggestions == list(STATIC_SUGGESTIONS)
    assert session.error is None
    assert session.generation_status is GenerationStatus.IDLE


@pytest.mark.asyncio
async def test_empty_suggestions_fall_back_to_static():
    session = _session(suggestions=ControlledFetcher(results=[[]]))
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    await session.wait_for_suggestions()
    assert session.suggestions_status is SuggestionsStatus.READY
    assert session.suggestions == list(STATIC_SUGGESTIONS)


@pytest.mark.asyncio
async def test_generate_requires_both_images():
    fusion = ControlledFetcher(results=[IMAGE])
    session = _session(fusion=fusion)
    session.set_image(ImageSlot.CHARACTER, _image())
    assert session.can_generate is False

    outcome = await session.generate()
    assert outcome.failure_type is FailureType.VALIDATION
    assert session.generation_status is GenerationStatus.FAILED
    assert session.error.title == "Missing Images"
    assert fusion.calls == []


@pytest.mark.asyncio
async def test_generate_success_passes_inputs():
    fusion = ControlledFetcher(results=[IMAGE])
    session = _session(fusion=fusion)
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    session.set_instruction("Make the character wear the item")
    session.set_aspect_ratio("1:1")

    outcome = await session.generate()
    assert outcome.ok
    assert session.generation_status is GenerationStatus.SUCCEEDED
    character, product, instruction, ratio = fusion.calls[0]
    assert character.mime_type == "image/png"
    assert instruction == "Make the character wear the item"
    assert ratio is AspectRatio.SQUARE

    state = session.snapshot()
    assert state.image == "data:image/png;base64,aW1n"
    assert state.error is None


@pytest.mark.asyncio
async def test_generate_while_pending_is_noop():
    fusion = ControlledFetcher(results=[IMAGE])
    fusion.auto = False
    session = _session(fusion=fusion)
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))

    first = asyncio.ensure_future(session.generate())
    await asyncio.sleep(0)
    assert session.generation_status is GenerationStatus.PENDING
    assert session.can_generate is False
    assert await session.generate() is None
    assert len(fusion.calls) == 1

    fusion.gates[0].set()
    assert (await first).ok


@pytest.mark.asyncio
async def test_new_attempt_clears_previous_result():
    fusion = ControlledFetcher(results=[IMAGE, IMAGE])
    session = _session(fusion=fusion)
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    await session.generate()
    assert session.outcome is not None

    fusion.auto = False
    pending = asyncio.ensure_future(session.generate())
    await asyncio.sleep(0)
    assert session.outcome is None
    assert session.snapshot().image is None
    fusion.gates[1].set()
    await pending


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, kind, title",
    [
        (SafetyBlockedError("blocked"), FailureType.SAFETY_BLOCKED, "Content Policy Violation"),
        (TransportError("502"), FailureType.TRANSPORT, "Oops! Something Went Wrong"),
        (RuntimeError("socket reset"), FailureType.TRANSPORT, "Oops! Something Went Wrong"),
    ],
)
async def test_generate_maps_errors(error, kind, title):
    session = _session(fusion=ControlledFetcher(error=error))
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    outcome = await session.generate()
    assert outcome.failure_type is kind
    assert session.generation_status is GenerationStatus.FAILED
    assert session.error.kind == kind.value
    assert session.error.title == title
    assert session.snapshot().image is None


@pytest.mark.asyncio
async def test_reset_mid_flight_abandons_result():
    fusion = ControlledFetcher(results=[IMAGE])
    fusion.auto = False
    session = _session(fusion=fusion)
    first_character = _image()
    session.set_image(ImageSlot.CHARACTER, first_character)
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))
    session.set_instruction("hold it")
    session.set_aspect_ratio("16:9")

    pending = asyncio.ensure_future(session.generate())
    await asyncio.sleep(0)
    session.reset()
    assert first_character.released
    assert session.character is None and session.product is None
    assert session.instruction == ""
    assert session.aspect_ratio is AspectRatio.ORIGINAL
    assert session.generation_status is GenerationStatus.IDLE

    fusion.gates[0].set()
    assert await pending is None
    assert session.outcome is None
    assert session.generation_status is GenerationStatus.IDLE


@pytest.mark.asyncio
async def test_cancelled_generation_returns_to_idle():
    fusion = ControlledFetcher(results=[IMAGE, IMAGE])
    fusion.auto = False
    session = _session(fusion=fusion)
    session.set_image(ImageSlot.CHARACTER, _image())
    session.set_image(ImageSlot.PRODUCT, _image(b"p"))

    pending = asyncio.ensure_future(session.generate())
    await asyncio.sleep(0)
    assert session.generation_status is GenerationStatus.PENDING
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending
    assert session.generation_status is GenerationStatus.IDLE
    assert session.can_generate is True
    assert session.outcome is None

    fusion.auto = True
    outcome = await session.generate()
    assert outcome.ok
    assert len(fusion.calls) == 2


@pytest.mark.asyncio
async def test_replacing_image_releases_previous_preview():
    session = _session()
    old = _image(b"old")
    session.set_image(ImageSlot.CHARACTER, old)
    session.set_image(ImageSlot.CHARACTER, _image(b"new"))
    assert old.released
    assert not session.character.released


def test_session_store_expires_idle_sessions():
    store = SessionStore(ttl_seconds=60)
    session = store.create()
    assert store.get(session.session_id) is session
    sid = session.session_id
    store._sessions[sid] = (session, store._sessions[sid][1] - 120)
    with pytest.raises(KeyError):
        store.get(sid)
    assert len(store) == 0


def test_session_store_delete():
    store = SessionStore()
    session = store.create()
    store.delete(session.session_id)
    store.delete(session.session_id)
    with pytest.raises(KeyError):
        store.get(session.session_id)
