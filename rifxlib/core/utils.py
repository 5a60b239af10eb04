#!/usr/bin/env python3

import math
from decimal import Decimal
from fractions import Fraction

#============================================

_QUIET_MODE = False

#============================================

def set_quiet_mode(value: bool) -> None:
	global _QUIET_MODE
	_QUIET_MODE = bool(value)

#============================================

def is_quiet_mode() -> bool:
	return _QUIET_MODE

#============================================

def log_info(message: str) -> None:
	if is_quiet_mode():
		return
	print(message)

#============================================

def parse_fps(raw_fps) -> Fraction:
	if raw_fps is None:
		raise RuntimeError("fps is required")
	if isinstance(raw_fps, Fraction):
		return raw_fps
	if isinstance(raw_fps, int):
		return Fraction(raw_fps, 1)
	if isinstance(raw_fps, float):
		return Fraction(str(raw_fps))
	if isinstance(raw_fps, str):
		if '/' in raw_fps:
			parts = raw_fps.split('/')
			return Fraction(int(parts[0]), int(parts[1]))
		return Fraction(raw_fps)
	raise RuntimeError("fps must be int, float, or fraction string")

#============================================

def round_half_up_fraction(value: Fraction) -> int:
	numerator = value.numerator
	denominator = value.denominator
	whole = numerator // denominator
	remainder = numerator - (whole * denominator)
	if remainder * 2 >= denominator:
		return whole + 1
	return whole

#============================================

def frames_from_seconds(seconds, fps: Fraction) -> int:
	seconds_fraction = Fraction(str(Decimal(str(seconds))))
	frame_fraction = seconds_fraction * fps
	return round_half_up_fraction(frame_fraction)

#============================================

def seconds_from_frames(frames: int, fps: Fraction) -> float:
	seconds_fraction = Fraction(frames, 1) / fps
	return float(seconds_fraction)

#============================================

def tidy_float32(value: float) -> float:
	"""
	Trim a float read from a 32-bit field to the digits it actually holds.

	Float32 values such as 0.1 widen to 0.10000000149011612; seven significant
	digits keep template JSON stable and readable.
	"""
	return float(f"{float(value):.7g}")

#============================================

def is_usable_number(value) -> bool:
	if value is None:
		return False
	if isinstance(value, float) and not math.isfinite(value):
		return False
	return True

#============================================

def clamp_number(value: float, minimum: float, maximum: float) -> float:
	return max(minimum, min(maximum, value))

#============================================

def rgb_to_hex(red: int, green: int, blue: int) -> str:
	return f"#{red:02x}{green:02x}{blue:02x}"

#============================================

def normalize_color(raw_color, default: str) -> str:
	if raw_color is None:
		return default
	if isinstance(raw_color, str):
		value = raw_color.strip()
		if value == '':
			return default
		if not value.startswith('#'):
			value = '#' + value
		return value.lower()
	if isinstance(raw_color, (list, tuple)) and len(raw_color) >= 3:
		channels = []
		for channel in raw_color[:3]:
			number = float(channel)
			# after effects stores colors as 0-1 floats
			if isinstance(channel, float) and number <= 1.0:
				number = number * 255
			channels.append(int(clamp_number(round(number), 0, 255)))
		return rgb_to_hex(channels[0], channels[1], channels[2])
	raise RuntimeError(f"unsupported color value: {raw_color!r}")
