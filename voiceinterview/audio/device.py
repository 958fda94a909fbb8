"""Local audio I/O: microphone capture thread and speaker playback."""

import logging
import queue
import time
from abc import ABC, abstractmethod
from threading import Event, Lock, Thread
from typing import Callable, Dict, Optional

import numpy as np
import pyaudio

from ..errors.exceptions import MicrophonePermissionError
from ..models.audio import AudioFrame
from .codec import AudioFrameCodec

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException], None]


class MicrophoneHandle:
    """An acquired microphone. Released exactly once by its device."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        self.released = False


class AbstractAudioDevice(ABC):
    """Local audio collaborator: microphone acquisition and playback."""

    @abstractmethod
    def acquire_microphone(self, on_frame: Callable[[AudioFrame], None],
                           on_error: Optional[ErrorCallback] = None) -> MicrophoneHandle:
        """Start capturing and deliver each frame to ``on_frame``.

        ``on_frame`` may be called from a capture thread and must not block.
        If capture later stops on a device error the handle is released and
        ``on_error`` is called once with that error, also from the capture
        thread.

        Raises:
            MicrophonePermissionError: If the microphone cannot be acquired
        """
        pass

    @abstractmethod
    def release_microphone(self, handle: MicrophoneHandle) -> None:
        """Stop capturing and free the microphone. Safe to call twice."""
        pass

    @abstractmethod
    def playback(self, samples: np.ndarray, sample_rate: int) -> None:
        """Queue float samples for playback without blocking the caller."""
        pass


class _PyAudioMicrophone(MicrophoneHandle):

    def __init__(self, device_name: str):
        super().__init__(device_name)
        self.stream: Optional[pyaudio.Stream] = None
        self.thread: Optional[Thread] = None
        self.stop_event = Event()


class PyAudioDevice(AbstractAudioDevice):
    """PyAudio-backed microphone capture and playback.

    Capture runs in a background thread that reads float32 chunks and hands
    them to the frame callback. Playback frames are queued to a second thread
    that writes int16 PCM to an output stream opened lazily per sample rate.
    """

    def __init__(self,
                 sample_rate: int = 16000,
                 chunk_size: int = 4096,
                 channels: int = 1):
        """Initialize audio device.

        Args:
            sample_rate: Capture sample rate (16kHz for agent compatibility)
            chunk_size: Samples per captured frame
            channels: Number of capture channels (1 for mono)
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.codec = AudioFrameCodec(sample_rate=sample_rate)

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self._output_streams: Dict[int, pyaudio.Stream] = {}
        self._lock = Lock()
        self._playback_queue: "queue.Queue" = queue.Queue(maxsize=256)
        self._playback_thread: Optional[Thread] = None
        self._playback_stop = Event()

        self.total_chunks = 0
        self._microphone: Optional[_PyAudioMicrophone] = None

    def _get_pyaudio(self) -> pyaudio.PyAudio:
        if self.pyaudio_instance is None:
            self.pyaudio_instance = pyaudio.PyAudio()
        return self.pyaudio_instance

    @property
    def is_capturing(self) -> bool:
        return self._microphone is not None and not self._microphone.released

    def acquire_microphone(self, on_frame: Callable[[AudioFrame], None],
                           on_error: Optional[ErrorCallback] = None) -> MicrophoneHandle:
        if self.is_capturing:
            raise MicrophonePermissionError("Microphone is already in use by another session")

        try:
            stream = self._get_pyaudio().open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except OSError as e:
            logger.error(f"Unable to open microphone: {e}")
            raise MicrophonePermissionError(f"Microphone access denied: {e}", cause=e) from e

        logger.info(f"Microphone opened: {self.sample_rate}Hz, {self.chunk_size} samples/chunk")

        handle = _PyAudioMicrophone("pyaudio-default-input")
        handle.stream = stream
        self.total_chunks = 0

        handle.thread = Thread(target=self._capture_continuously, args=(handle, on_frame, on_error), daemon=True)
        handle.thread.name = "MicrophoneCaptureThread"
        self._microphone = handle
        handle.thread.start()
        return handle

    def _capture_continuously(self, handle: _PyAudioMicrophone,
                              on_frame: Callable[[AudioFrame], None],
                              on_error: Optional[ErrorCallback]) -> None:
        """Internal method: capture loop in background thread."""
        try:
            while not handle.stop_event.is_set():
                data = handle.stream.read(self.chunk_size, exception_on_overflow=False)
                self.total_chunks += 1
                frame = AudioFrame(
                    samples=np.frombuffer(data, dtype=np.float32).copy(),
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                    timestamp=time.monotonic(),
                    sequence_number=self.total_chunks,
                )
                on_frame(frame)
        except OSError as e:
            if handle.stop_event.is_set():
                return
            logger.error(f"Microphone capture stopped unexpectedly: {e}")
            self._close_microphone(handle)
            if on_error is not None:
                on_error(e)
        finally:
            logger.debug(f"Capture thread exiting after {self.total_chunks} chunks")

    def release_microphone(self, handle: MicrophoneHandle) -> None:
        """Stop the capture thread and close its stream.

        Blocks until the thread finishes its current read; async callers
        should run it off the event loop.
        """
        if handle.released:
            return
        if isinstance(handle, _PyAudioMicrophone):
            handle.stop_event.set()
            if handle.thread and handle.thread.is_alive():
                handle.thread.join(timeout=2.0)
                if handle.thread.is_alive():
                    logger.warning("Capture thread did not stop cleanly")
        self._close_microphone(handle)

    def _close_microphone(self, handle: MicrophoneHandle) -> None:
        with self._lock:
            if handle.released:
                return
            handle.released = True

        stream = getattr(handle, "stream", None)
        if stream is not None:
            try:
                stream.stop_stream()
            except OSError as e:
                logger.warning(f"Error stopping capture stream: {e}")
            finally:
                stream.close()

        if self._microphone is handle:
            self._microphone = None
        logger.info(f"Microphone released. Total chunks: {self.total_chunks}")

    def playback(self, samples: np.ndarray, sample_rate: int) -> None:
        self._ensure_playback_thread()
        try:
            self._playback_queue.put_nowait((self.codec.encode_pcm(samples), sample_rate))
        except queue.Full:
            logger.warning("Playback queue full, dropping agent audio frame")

    def _ensure_playback_thread(self) -> None:
        with self._lock:
            if self._playback_thread is not None and self._playback_thread.is_alive():
                return
            self._playback_stop.clear()
            self._playback_thread = Thread(target=self._play_continuously, daemon=True)
            self._playback_thread.name = "PlaybackThread"
            self._playback_thread.start()

    def _play_continuously(self) -> None:
        """Internal method: playback loop in background thread."""
        while not self._playback_stop.is_set():
            try:
                pcm, sample_rate = self._playback_queue.get(timeout=0.2)
            except queue.Empty:
                continue
            stream = self._output_streams.get(sample_rate)
            if stream is None:
                stream = self._get_pyaudio().open(
                    format=pyaudio.paInt16,
                    channels=1,
                    rate=sample_rate,
                    output=True,
                )
                self._output_streams[sample_rate] = stream
                logger.info(f"Playback stream opened at {sample_rate}Hz")
            try:
                stream.write(pcm, exception_on_underflow=False)
            except OSError as e:
                logger.error(f"Playback write failed: {e}")

    def terminate(self) -> None:
        """Stop playback, close output streams and the PyAudio instance."""
        if self._microphone is not None:
            self.release_microphone(self._microphone)
        self._playback_stop.set()
        if self._playback_thread and self._playback_thread.is_alive():
            self._playback_thread.join(timeout=2.0)
        self._playback_thread = None
        with self._lock:
            for stream in self._output_streams.values():
                try:
                    stream.stop_stream()
                finally:
                    stream.close()
            self._output_streams.clear()
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
