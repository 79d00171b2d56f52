"""
GStreamer Frame Source Module.

Creates and manages a GStreamer pipeline that keeps the most recent
decoded frame of a stream available for snapshot polling.

Pipeline Structure:
    ┌──────────────┐    ┌──────────────┐    ┌────────────┐    ┌─────────┐
    │ uridecodebin │───▶│ videoconvert │───▶│ capsfilter │───▶│ appsink │
    │ (RTSP/file)  │    │              │    │ RGBA       │    │ latest  │
    └──────────────┘    └──────────────┘    └────────────┘    └─────────┘

Notes:
- The appsink keeps one buffer and drops older ones; the motion watcher
  polls a snapshot on its own interval rather than consuming every frame
- Samples arrive on a GStreamer streaming thread and are read from the
  main loop thread, so the latest frame is guarded by a lock
"""

import threading
from typing import Callable, Optional

import gi
gi.require_version('Gst', '1.0')
gi.require_version('GstApp', '1.0')
from gi.repository import Gst, GstApp, GLib

from gridmotion.config import config
from gridmotion.frames import ColorFrame, CaptureError, InvalidFrameError
from gridmotion.watcher import SOURCE_CONNECTED, SOURCE_DISCONNECTED, SOURCE_FAILED


class StreamFrameSource:
    """
    GStreamer pipeline exposing the latest frame of a single stream.

    Manages the lifecycle of the stream connection including:
    - Pipeline construction and linking
    - Retaining the most recent decoded frame
    - Error reporting via the bus
    - Connection state notifications (first frame, end of stream, error)
    """

    def __init__(
        self,
        stream_id: str,
        uri: str,
        on_state: Optional[Callable[[str], None]] = None
    ):
        """
        Initialize the frame source.

        Args:
            stream_id: Unique identifier for this stream
            uri: Any URI uridecodebin accepts (rtsp://, file://, http://)
            on_state: Called on the main loop thread with SOURCE_CONNECTED once
                the first frame arrives, SOURCE_DISCONNECTED on end of stream
                and SOURCE_FAILED on pipeline errors
        """
        self.stream_id = stream_id
        self.uri = uri
        self.on_state = on_state

        # Pipeline state
        self.pipeline: Optional[Gst.Pipeline] = None
        self._running: bool = False
        self._connected: bool = False
        self._error_count: int = 0

        self._lock = threading.Lock()
        self._latest: Optional[ColorFrame] = None

    def build_pipeline(self) -> bool:
        """
        Construct the GStreamer pipeline.

        Returns:
            True if pipeline was built successfully, False otherwise.
        """
        try:
            self.pipeline = Gst.Pipeline.new(f"pipeline_{self.stream_id.replace('/', '_')}")

            # Decoder bin; its source pad appears once the stream is negotiated
            decodebin = Gst.ElementFactory.make("uridecodebin", "decodebin")
            videoconvert = Gst.ElementFactory.make("videoconvert", "videoconvert")

            rgba_filter = Gst.ElementFactory.make("capsfilter", "rgba_filter")
            if rgba_filter is not None:
                rgba_filter.set_property("caps", Gst.Caps.from_string("video/x-raw,format=RGBA"))

            appsink = Gst.ElementFactory.make("appsink", "appsink")

            elements = [decodebin, videoconvert, rgba_filter, appsink]
            for element in elements:
                if element is None:
                    print(f"[ERROR] stream={self.stream_id} Failed to create GStreamer element", flush=True)
                    return False
                self.pipeline.add(element)

            decodebin.set_property("uri", self.uri)
            appsink.set_property("emit-signals", True)
            appsink.set_property("max-buffers", 1)
            appsink.set_property("drop", True)
            appsink.set_property("sync", False)
            appsink.connect("new-sample", self._on_new_sample)

            decodebin.connect("pad-added", self._on_pad_added, videoconvert)

            if not videoconvert.link(rgba_filter):
                print(f"[ERROR] stream={self.stream_id} Failed to link videoconvert -> rgba_filter", flush=True)
                return False
            if not rgba_filter.link(appsink):
                print(f"[ERROR] stream={self.stream_id} Failed to link rgba_filter -> appsink", flush=True)
                return False

            bus = self.pipeline.get_bus()
            bus.add_signal_watch()
            bus.connect("message", self._on_bus_message)

            print(f"[INFO] stream={self.stream_id} Pipeline built successfully", flush=True)
            return True

        except Exception as e:
            print(f"[ERROR] stream={self.stream_id} Failed to build pipeline: {e}", flush=True)
            return False

    def _on_pad_added(self, element, pad, convert):
        """Link the decoded video pad; audio pads are ignored."""
        caps = pad.get_current_caps() or pad.query_caps(None)
        caps_name = caps.to_string() if caps else "unknown"

        if not caps_name.startswith("video/"):
            return

        sink_pad = convert.get_static_pad("sink")
        if sink_pad.is_linked():
            return

        result = pad.link(sink_pad)
        if result == Gst.PadLinkReturn.OK:
            print(f"[INFO] stream={self.stream_id} Video pad linked successfully", flush=True)
        else:
            print(f"[WARN] stream={self.stream_id} Failed to link video pad: {result}", flush=True)

    def _on_new_sample(self, appsink) -> Gst.FlowReturn:
        """Copy the newest decoded frame out of the appsink."""
        sample = appsink.emit("pull-sample")
        if sample is None:
            return Gst.FlowReturn.OK

        buffer = sample.get_buffer()
        structure = sample.get_caps().get_structure(0)
        width = structure.get_int("width")[1]
        height = structure.get_int("height")[1]

        success, map_info = buffer.map(Gst.MapFlags.READ)
        if not success:
            return Gst.FlowReturn.OK

        try:
            # Rows may be padded to a stride wider than width * 4
            stride = len(map_info.data) // height if height > 0 else 0
            data = bytes(map_info.data)
        finally:
            buffer.unmap(map_info)

        try:
            frame = self._frame_from_buffer(data, width, height, stride)
        except InvalidFrameError as e:
            if config.verbose:
                print(f"[DEBUG] stream={self.stream_id} Dropping sample: {e}", flush=True)
            return Gst.FlowReturn.OK

        with self._lock:
            self._latest = frame
            first_frame = self._running and not self._connected
            if first_frame:
                self._connected = True

        # Streaming thread; hand the notification to the main loop
        if first_frame:
            GLib.idle_add(self._notify_state, SOURCE_CONNECTED)

        return Gst.FlowReturn.OK

    def _notify_state(self, state: str):
        if self.on_state:
            try:
                self.on_state(state)
            except Exception as e:
                print(f"[WARN] stream={self.stream_id} State callback failed: {e}", flush=True)
        return GLib.SOURCE_REMOVE

    def _mark_down(self, state: str):
        """Drop the held frame and report the connection as gone."""
        with self._lock:
            was_connected = self._connected
            self._running = False
            self._connected = False
            self._latest = None
        if was_connected or state == SOURCE_FAILED:
            self._notify_state(state)

    @staticmethod
    def _frame_from_buffer(data: bytes, width: int, height: int, stride: int) -> ColorFrame:
        row_bytes = width * 4
        if stride == row_bytes or stride <= 0:
            return ColorFrame.from_bytes(data, width, height, channels=4)

        rows = [data[y * stride:y * stride + row_bytes] for y in range(height)]
        return ColorFrame.from_bytes(b"".join(rows), width, height, channels=4)

    def _on_bus_message(self, bus, message):
        """Handle GStreamer bus messages."""
        msg_type = message.type

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            print(f"[ERROR] stream={self.stream_id} {err.message}", flush=True)
            if config.verbose and debug:
                print(f"[DEBUG] stream={self.stream_id} {debug}", flush=True)
            self._error_count += 1
            self._mark_down(SOURCE_FAILED)

        elif msg_type == Gst.MessageType.EOS:
            print(f"[INFO] stream={self.stream_id} End of stream", flush=True)
            self._mark_down(SOURCE_DISCONNECTED)

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == self.pipeline:
                old, new, pending = message.parse_state_changed()
                if config.verbose:
                    print(f"[DEBUG] stream={self.stream_id} State: {old.value_nick} -> {new.value_nick}", flush=True)

        elif msg_type == Gst.MessageType.WARNING:
            warn, debug = message.parse_warning()
            print(f"[WARN] stream={self.stream_id} {warn.message}", flush=True)

    def start(self) -> bool:
        """
        Start the pipeline.

        Returns:
            True if pipeline started successfully.
        """
        if self.pipeline is None:
            if not self.build_pipeline():
                return False

        ret = self.pipeline.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            print(f"[ERROR] stream={self.stream_id} Failed to start pipeline", flush=True)
            return False

        with self._lock:
            self._running = True
            self._connected = False
        self._error_count = 0
        print(f"[INFO] stream={self.stream_id} Pipeline started, connecting to {self.uri}", flush=True)
        return True

    def stop(self):
        """Stop the pipeline and release the held frame."""
        if self.pipeline:
            print(f"[INFO] stream={self.stream_id} Stopping pipeline...", flush=True)
            self.pipeline.set_state(Gst.State.NULL)
        with self._lock:
            self._running = False
            self._connected = False
            self._latest = None

    @property
    def ready(self) -> bool:
        """True once the pipeline is running and has produced a frame."""
        with self._lock:
            return self._running and self._latest is not None

    def snapshot(self) -> ColorFrame:
        """
        Return the most recent frame.

        Raises:
            CaptureError: if the pipeline is not running or has no frame yet
        """
        if not self._running:
            raise CaptureError(f"pipeline for {self.stream_id} is not running")
        with self._lock:
            frame = self._latest
        if frame is None:
            raise CaptureError(f"no frame received yet from {self.stream_id}")
        return frame

    def is_running(self) -> bool:
        """Check if pipeline is currently running."""
        return self._running

    @property
    def error_count(self) -> int:
        """Get the number of errors encountered."""
        return self._error_count
