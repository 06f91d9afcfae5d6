"""Payload codecs for the MELCloud API."""

from .melcloud_codec import (
    attribute_errors,
    decode_buildings,
    decode_error_log,
    decode_frost_protection,
    decode_holiday_mode,
    decode_login,
    decode_report,
    encode_error_log_request,
    encode_frost_protection,
    encode_holiday_mode,
    encode_login,
    encode_report_request,
    format_attribute_errors,
    iter_building_devices,
)

__all__ = [
    "attribute_errors",
    "decode_buildings",
    "decode_error_log",
    "decode_frost_protection",
    "decode_holiday_mode",
    "decode_login",
    "decode_report",
    "encode_error_log_request",
    "encode_frost_protection",
    "encode_holiday_mode",
    "encode_login",
    "encode_report_request",
    "format_attribute_errors",
    "iter_building_devices",
]
