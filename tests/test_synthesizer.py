"""Tests for hark.synthesizer: scoped, cancellable playback."""

from __future__ import annotations

import threading

import numpy as np
import pytest
from conftest import FakeEngine, FakeSink

from hark.audio.playback import PlaybackMonitor, PlaybackState
from hark.synthesizer import SpeechSynthesizer, resample
from hark.types import ResponsePhrase


class TestResample:
    def test_same_rate_is_unchanged(self) -> None:
        audio = np.arange(100, dtype=np.int16)
        assert np.array_equal(resample(audio, 16_000, 16_000), audio)

    def test_length_follows_rate(self) -> None:
        audio = np.zeros(22_050, dtype=np.int16)
        out = resample(audio, 22_050, 16_000)
        assert out.dtype == np.int16
        assert len(out) == 16_000

    def test_empty(self) -> None:
        assert resample(np.array([], dtype=np.int16), 8_000, 16_000).size == 0


class TestSpeechSynthesizer:
    def test_plays_every_block(self, synthesizer, fake_sink, monitor) -> None:
        assert synthesizer.speak(ResponsePhrase("Turning on the light."))
        assert len(fake_sink.blocks) == 4
        assert sum(b.size for b in fake_sink.blocks) == 4096
        assert fake_sink.aborts == 0
        assert monitor.state is PlaybackState.IDLE

    def test_monitor_is_speaking_during_playback(self, fake_engine, monitor) -> None:
        seen: list[bool] = []

        class Probe(FakeSink):
            def write(self, block: np.ndarray) -> None:
                seen.append(monitor.speaking)
                super().write(block)

        SpeechSynthesizer(fake_engine, Probe(), monitor).speak("hello")
        assert seen and all(seen)
        assert not monitor.speaking

    def test_resamples_to_sink_rate(self, monitor) -> None:
        sink = FakeSink(sample_rate=11_025, blocksize=512)
        engine = FakeEngine(samples=22_050, sample_rate=22_050)
        SpeechSynthesizer(engine, sink, monitor).speak("hello")
        assert sum(b.size for b in sink.blocks) == 11_025

    def test_blank_phrase_is_silent(self, synthesizer, fake_engine, fake_sink) -> None:
        assert synthesizer.speak("   ")
        assert fake_engine.texts == []
        assert fake_sink.blocks == []

    def test_precancelled_plays_nothing(self, synthesizer, fake_sink, monitor) -> None:
        cancel = threading.Event()
        cancel.set()
        assert not synthesizer.speak("hello", cancel)
        assert fake_sink.blocks == []
        assert fake_sink.aborts == 1
        assert monitor.state is PlaybackState.IDLE

    def test_cancel_stops_within_a_block(self, monitor) -> None:
        cancel = threading.Event()

        class CancellingSink(FakeSink):
            def write(self, block: np.ndarray) -> None:
                super().write(block)
                if len(self.blocks) == 2:
                    cancel.set()

        sink = CancellingSink()
        synth = SpeechSynthesizer(FakeEngine(samples=100_000), sink, monitor)
        assert not synth.speak("a long answer", cancel)
        assert len(sink.blocks) == 2
        assert sink.aborts == 1
        assert monitor.state is PlaybackState.IDLE

    def test_engine_failure_releases_monitor(self, fake_sink, monitor) -> None:
        class Broken:
            def synthesize(self, text):
                raise RuntimeError("voice crashed")
                yield

        synth = SpeechSynthesizer(Broken(), fake_sink, monitor)
        with pytest.raises(RuntimeError):
            synth.speak("hello")
        assert monitor.state is PlaybackState.IDLE
        assert fake_sink.aborts == 1

    def test_failed_abort_releases_monitor(self, fake_engine, monitor) -> None:
        class StuckSink(FakeSink):
            def abort(self) -> None:
                super().abort()
                raise RuntimeError("PortAudio error")

        cancel = threading.Event()
        cancel.set()
        synth = SpeechSynthesizer(fake_engine, StuckSink(), monitor)
        with pytest.raises(RuntimeError):
            synth.speak("hello", cancel)
        assert monitor.state is PlaybackState.IDLE

    def test_warm_caches_phrases(self, synthesizer, fake_engine, fake_sink) -> None:
        synthesizer.warm(["Sorry?", "Sorry?", ""])
        assert fake_engine.texts == ["Sorry?"]
        synthesizer.speak("Sorry?")
        assert fake_engine.texts == ["Sorry?"]
        assert sum(b.size for b in fake_sink.blocks) == 4096


class TestPlaybackMonitor:
    def test_covers_speaking_window_and_tail(self) -> None:
        monitor = PlaybackMonitor(echo_tail=0.25)
        assert not monitor.covers(1.0)
        monitor.mark_started(now=1.0)
        assert monitor.covers(5.0)
        assert not monitor.covers(0.5)
        monitor.mark_stopped(now=2.0)
        assert monitor.covers(2.2)
        assert not monitor.covers(2.3)

    def test_ended_before(self) -> None:
        monitor = PlaybackMonitor(echo_tail=0.25)
        assert not monitor.ended_before(10.0)
        monitor.mark_started(now=1.0)
        assert not monitor.ended_before(10.0)
        monitor.mark_stopped(now=2.0)
        assert not monitor.ended_before(2.2)
        assert monitor.ended_before(2.3)

    def test_earlier_window_still_covered_after_restart(self) -> None:
        monitor = PlaybackMonitor(echo_tail=0.25)
        monitor.mark_started(now=10.0)
        monitor.mark_stopped(now=12.0)
        monitor.mark_started(now=12.1)
        assert monitor.covers(11.0)
        assert monitor.covers(12.2)
        assert not monitor.covers(9.0)
        monitor.mark_stopped(now=14.0)
        assert monitor.covers(11.0)
        assert not monitor.ended_before(14.2)
        assert monitor.ended_before(14.3)

    def test_stop_without_start_is_ignored(self) -> None:
        monitor = PlaybackMonitor()
        monitor.mark_stopped(now=1.0)
        assert not monitor.covers(1.0)
        assert not monitor.ended_before(2.0)
