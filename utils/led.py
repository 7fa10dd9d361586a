"""
Status LED for the bridge, driven through gpiozero.

The LED shows a steady base color for the device power state and briefly
flashes on serial traffic.
"""

import threading

COLOR_MAP: dict[str, tuple[int, int, int]] = {
    "red": (255, 0, 0),
    "green": (0, 255, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "cyan": (0, 255, 255),
    "magenta": (255, 0, 255),
    "white": (255, 255, 255),
    "off": (0, 0, 0),
}


def parse_color(value) -> tuple[int, int, int] | None:
    """
    Parse a configured color.

    Accepts a color name (e.g. "red") or an [r, g, b] list of 0-255 values.
    Returns None for anything else.
    """
    if isinstance(value, str):
        return COLOR_MAP.get(value.lower())
    if isinstance(value, (list, tuple)) and len(value) == 3:
        try:
            r, g, b = (int(c) for c in value)
        except (TypeError, ValueError):
            return None
        if all(0 <= c <= 255 for c in (r, g, b)):
            return (r, g, b)
    return None


class RgbLed:
    """
    Common-anode (or common-cathode) RGB LED on three BCM pins.

    Pass `device` to drive an already constructed gpiozero RGBLED (or a
    stand-in with the same color/off/close interface).
    """

    def __init__(
        self,
        red_bcm: int = 17,
        green_bcm: int = 27,
        blue_bcm: int = 22,
        common_anode: bool = True,
        device=None,
    ):
        if device is None:
            from gpiozero import RGBLED
            device = RGBLED(
                red=red_bcm,
                green=green_bcm,
                blue=blue_bcm,
                active_high=not common_anode,
                initial_value=(0, 0, 0),
            )
        self._led = device
        self._base_color: tuple[int, int, int] = (0, 0, 0)
        self._lock = threading.Lock()
        self._flash_gen = 0
        self._restore_timer: threading.Timer | None = None

    def set_rgb(self, r: int, g: int, b: int) -> None:
        """Set the color from 0-255 channel values."""
        self._led.color = (r / 255.0, g / 255.0, b / 255.0)

    @property
    def base_color(self) -> tuple[int, int, int]:
        with self._lock:
            return self._base_color

    def set_base_color(self, r: int, g: int, b: int) -> None:
        """Set the color shown between flashes."""
        with self._lock:
            self._base_color = (r, g, b)
            if self._restore_timer is None:
                self.set_rgb(r, g, b)

    def flash(self, r: int, g: int, b: int, duration: float) -> None:
        """
        Show a color for duration seconds, then return to the base color.

        Non-blocking. A flash started while another is showing restarts the
        restore timer.
        """
        with self._lock:
            if self._restore_timer is not None:
                self._restore_timer.cancel()
            self._flash_gen += 1
            timer = threading.Timer(duration, self._restore, args=(self._flash_gen,))
            timer.daemon = True
            self._restore_timer = timer
            self.set_rgb(r, g, b)
            timer.start()

    def _restore(self, gen: int) -> None:
        with self._lock:
            if gen != self._flash_gen or self._restore_timer is None:
                return
            self._restore_timer = None
            self.set_rgb(*self._base_color)

    def off(self) -> None:
        with self._lock:
            if self._restore_timer is not None:
                self._restore_timer.cancel()
                self._restore_timer = None
            self._base_color = (0, 0, 0)
            self._led.off()

    def close(self) -> None:
        """Turn the LED off and release the GPIO pins."""
        self.off()
        self._led.close()
