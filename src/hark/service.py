"""Process wiring: load models, open devices, run the coordinator.

VoiceAssistant owns every long-lived resource (models, the input and output
streams, the optional live UI) and releases them on shutdown. Anything that
fails while loading raises FatalStartupFailure before a device is opened.
"""

import asyncio
import signal
from pathlib import Path

from rich.console import Console
from rich.live import Live

from hark.actions import ActionDispatcher, ActionRegistry
from hark.audio.channel import FrameChannel
from hark.audio.playback import AudioSink, PlaybackMonitor
from hark.audio.source import AudioSource
from hark.audio.vad import VoiceActivityDetector
from hark.catalog import BUNDLED_CATALOG, IntentCatalog, load_catalog
from hark.config import HarkConfig
from hark.constants import DEFAULT_EMBEDDING_WEIGHTS, EMBEDDING_BUNDLE_FILES
from hark.coordinator import PipelineCoordinator, PipelineStatus
from hark.embedding import load_embedding_model
from hark.env import LOGGER
from hark.errors import FatalStartupFailure
from hark.protocols import SynthesisEngine
from hark.recognizer import SpeechRecognizer, build_grammar, load_asr_model
from hark.resolver import IntentResolver
from hark.segmenter import UtteranceSegmenter
from hark.synthesizer import EspeakEngine, PiperEngine, SpeechSynthesizer
from hark.ui import SessionInfo, render_layout
from hark.wake import PhraseWakeDetector


def check_data_dir(config: HarkConfig) -> list[tuple[str, Path, bool]]:
    """List every file the assistant needs and whether it is present."""
    checks = [
        ("speech model", config.asr_model_path, config.asr_model_path.is_dir()),
        ("catalog", config.catalog_source, config.catalog_source.is_file()),
    ]
    for name in (DEFAULT_EMBEDDING_WEIGHTS, *EMBEDDING_BUNDLE_FILES):
        path = config.embedding_path / name
        checks.append((f"intent model {name}", path, path.is_file()))
    if config.synth.engine == "piper":
        checks.append(("voice", config.voice_path, config.voice_path.is_file()))
    return checks


def load_resolver(
    config: HarkConfig, catalog: IntentCatalog | None = None
) -> IntentResolver:
    """Load the embedding model and index the catalog."""
    catalog = catalog or load_catalog(config.catalog_source)
    embedder = load_embedding_model(config.embedding_path)
    return IntentResolver.from_catalog(
        catalog, embedder, config.resolver, config.corrections
    )


def load_engine(config: HarkConfig) -> SynthesisEngine:
    if config.synth.engine == "espeak":
        return EspeakEngine(
            voice=config.synth.espeak_voice,
            words_per_minute=config.synth.words_per_minute,
        )
    return PiperEngine.load(config.voice_path)


class VoiceAssistant:
    """Top-level lifecycle of one assistant session."""

    def __init__(self, config: HarkConfig, show_ui: bool = False) -> None:
        self.config = config
        self.show_ui = show_ui
        self.status = PipelineStatus()
        self.info = SessionInfo()
        self.console_ui = Console(stderr=True, force_terminal=True)
        self.live: Live | None = None
        self.loop: asyncio.AbstractEventLoop | None = None

    def _update_ui(self, force: bool = False) -> None:
        if not self.live:
            return
        self.live.update(render_layout(self.status, self.info), refresh=force)

    def _log_info(self, message: str, *args: object) -> None:
        """Log only when the live UI is disabled to avoid terminal clutter."""
        if not self.live:
            LOGGER.info(message, *args)

    async def _display(self) -> None:
        while True:
            await asyncio.sleep(0.1)
            self._update_ui()

    async def _build(
        self, channel: FrameChannel, monitor: PlaybackMonitor, sink: AudioSink
    ) -> PipelineCoordinator:
        config = self.config

        if config.catalog_source == BUNDLED_CATALOG:
            self._log_info(
                "No catalog at %s, using the bundled one", config.catalog_path
            )
        catalog = load_catalog(config.catalog_source)

        self._log_info("Loading speech model...")
        asr_model = await asyncio.to_thread(load_asr_model, config.asr_model_path)
        grammar = (
            build_grammar([*catalog.phrases(), *config.wake_phrases])
            if config.asr.grammar_from_catalog
            else None
        )
        recognizer = SpeechRecognizer(asr_model, config.audio.sample_rate, grammar)

        self._log_info("Loading intent model...")
        resolver = await asyncio.to_thread(load_resolver, config, catalog)

        self._log_info("Loading voice...")
        engine = await asyncio.to_thread(load_engine, config)

        registry = ActionRegistry.from_catalog(catalog)
        dispatcher = ActionDispatcher(
            registry, catalog.intent_actions(), config.responses
        )

        synthesizer = SpeechSynthesizer(engine, sink, monitor)
        if config.synth.precache:
            responses = config.responses
            await asyncio.to_thread(
                synthesizer.warm,
                [responses.not_understood, responses.not_actionable, responses.apology],
            )

        wake = (
            PhraseWakeDetector(config.wake_phrases) if config.wake_phrases else None
        )
        segmenter = UtteranceSegmenter(config.segmenter, monitor, wake)

        self.info = SessionInfo(
            asr_model=str(config.asr_model_path),
            voice=(
                str(config.voice_path)
                if config.synth.engine == "piper"
                else f"espeak:{config.synth.espeak_voice}"
            ),
            intents=len(catalog.intents),
            threshold=config.resolver.threshold,
            wake=", ".join(config.wake_phrases)
            + (" (required)" if config.segmenter.require_wake else ""),
        )

        return PipelineCoordinator(
            channel=channel,
            recognizer=recognizer,
            segmenter=segmenter,
            resolver=resolver,
            dispatcher=dispatcher,
            synthesizer=synthesizer,
            vad=VoiceActivityDetector(config.audio.vad()),
            turn_timeout_s=config.turn_timeout_s,
            status=self.status,
        )

    async def run(self) -> None:
        """Wire models, streams and tasks, then manage their lifecycle."""
        self.loop = asyncio.get_running_loop()
        audio = self.config.audio

        if self.show_ui:
            self.live = Live(
                render_layout(self.status, self.info),
                console=self.console_ui,
                refresh_per_second=10,
                transient=False,
            )
            self.live.start()

        channel = FrameChannel(audio.queue_maxsize)
        monitor = PlaybackMonitor(echo_tail=audio.echo_tail_s)
        sink = AudioSink(
            audio.output_sample_rate, audio.playback_block, audio.output_device
        )
        source = AudioSource(
            channel, audio.sample_rate, audio.frame_samples, audio.input_device
        )

        try:
            coordinator = await self._build(channel, monitor, sink)
            sink.open()
            source.open(self.loop)
        except FatalStartupFailure:
            sink.close()
            if self.live:
                self.live.stop()
            raise

        self._log_info(
            "Ready - %d intents, wake: %s",
            self.info.intents,
            self.info.wake or "off",
        )
        self._log_info("Listening... (Ctrl+C to stop)")
        self._update_ui(force=True)

        tasks = [asyncio.create_task(coordinator.run())]
        if self.live:
            tasks.append(asyncio.create_task(self._display()))

        stop_event = asyncio.Event()

        def signal_handler() -> None:
            if not stop_event.is_set():
                self._log_info("Stopping...")
                stop_event.set()

        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self.loop.add_signal_handler(sig, signal_handler)
                installed.append(sig)
            except NotImplementedError:
                pass

        stopper = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait(
                [stopper, tasks[0]], return_when=asyncio.FIRST_COMPLETED
            )
            if tasks[0].done() and not tasks[0].cancelled():
                exc = tasks[0].exception()
                if exc is not None:
                    LOGGER.error("Pipeline stopped: %s", exc)
        finally:
            stopper.cancel()
            for sig in installed:
                self.loop.remove_signal_handler(sig)

            for t in tasks:
                t.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=2.0,
                )
            except TimeoutError:
                LOGGER.warning("Pipeline did not stop within 2s")

            source.close()
            sink.close()
            if self.live:
                self.live.stop()
            if source.faults:
                LOGGER.info("%d audio glitches during session", source.faults)
