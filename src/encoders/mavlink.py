"""MAVLink message to JSON encoder."""

import json
import logging
import struct
import time
from typing import Dict, List, Tuple

from .base import BaseEncoder, EncodeError

MAVLINK_V1_MAGIC = 0xFE
MAVLINK_V2_MAGIC = 0xFD

# Packed mavlink_message_t: checksum, magic, len, incompat_flags, compat_flags,
# seq, sysid, compid, 24-bit msgid, then the payload area, ck[2] and signature[13]
MESSAGE_HEADER = struct.Struct("<HBBBBBBB3s")
MESSAGE_PAYLOAD_SIZE = 264
MESSAGE_SIZE = MESSAGE_HEADER.size + MESSAGE_PAYLOAD_SIZE + 2 + 13

# msgid -> (name, wire format, wire-order field names, published fields)
MESSAGE_TYPES: Dict[int, Tuple[str, struct.Struct, List[str], List[str]]] = {
    0: (
        "HEARTBEAT",
        struct.Struct("<IBBBBB"),
        ["custom_mode", "type", "autopilot", "base_mode", "system_status", "mavlink_version"],
        ["type", "autopilot", "base_mode", "custom_mode", "system_status", "mavlink_version"],
    ),
    1: (
        "SYS_STATUS",
        struct.Struct("<IIIHHhHHHHHHb"),
        [
            "onboard_control_sensors_present",
            "onboard_control_sensors_enabled",
            "onboard_control_sensors_health",
            "load",
            "voltage_battery",
            "current_battery",
            "drop_rate_comm",
            "errors_comm",
            "errors_count1",
            "errors_count2",
            "errors_count3",
            "errors_count4",
            "battery_remaining",
        ],
        ["voltage_battery", "current_battery", "battery_remaining", "load"],
    ),
    24: (
        "GPS_RAW_INT",
        struct.Struct("<QiiiHHHHBB"),
        ["time_usec", "lat", "lon", "alt", "eph", "epv", "vel", "cog", "fix_type", "satellites_visible"],
        ["time_usec", "fix_type", "lat", "lon", "alt", "eph", "epv", "vel", "cog", "satellites_visible"],
    ),
    30: (
        "ATTITUDE",
        struct.Struct("<I6f"),
        ["time_boot_ms", "roll", "pitch", "yaw", "rollspeed", "pitchspeed", "yawspeed"],
        ["time_boot_ms", "roll", "pitch", "yaw", "rollspeed", "pitchspeed", "yawspeed"],
    ),
    32: (
        "LOCAL_POSITION_NED",
        struct.Struct("<I6f"),
        ["time_boot_ms", "x", "y", "z", "vx", "vy", "vz"],
        ["time_boot_ms", "x", "y", "z", "vx", "vy", "vz"],
    ),
}


class MavlinkEncoder(BaseEncoder):
    """Encodes arrays of packed MAVLink messages read from a pipe as JSON.

    Only the first message of a chunk is converted.
    """

    name = "mavlink"

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def encode(self, data: bytes) -> str:
        n_messages = self._validate(data)
        if n_messages > 1:
            self.logger.debug(f"Received {n_messages} MAVLink messages, converting first one")
        return json.dumps(self.decode_message(data[:MESSAGE_SIZE]))

    def decode_message(self, record: bytes) -> dict:
        """Decode one packed MAVLink message into a dictionary.

        Args:
            record: Exactly one packed message

        Returns:
            Header fields, a timestamp, and the message-specific fields
        """
        (_checksum, _magic, length, _incompat, _compat, seq, sysid, compid, msgid_bytes) = (
            MESSAGE_HEADER.unpack_from(record)
        )
        msgid = int.from_bytes(msgid_bytes, "little")

        result = {
            "msgid": msgid,
            "sysid": sysid,
            "compid": compid,
            "seq": seq,
            "timestamp": int(time.time()),
        }

        message_type = MESSAGE_TYPES.get(msgid)
        if message_type is None:
            result["raw_data"] = "unsupported_message_type"
            result["message_name"] = f"UNKNOWN_MSG_{msgid}"
            return result

        _name, wire_format, wire_fields, published = message_type
        payload_start = MESSAGE_HEADER.size
        # MAVLink 2 truncates trailing zero bytes; restore them before unpacking
        payload = record[payload_start : payload_start + min(length, wire_format.size)]
        payload = payload.ljust(wire_format.size, b"\x00")

        values = dict(zip(wire_fields, wire_format.unpack(payload)))
        for field in published:
            result[field] = values[field]
        return result

    def _validate(self, data: bytes) -> int:
        """Check a chunk holds whole MAVLink messages and return how many."""
        if not data or len(data) % MESSAGE_SIZE != 0:
            raise EncodeError(f"{len(data)} bytes is not a whole number of MAVLink messages")

        n_messages = len(data) // MESSAGE_SIZE
        for index in range(n_messages):
            magic = data[index * MESSAGE_SIZE + 2]
            if magic not in (MAVLINK_V1_MAGIC, MAVLINK_V2_MAGIC):
                raise EncodeError(f"Invalid MAVLink magic 0x{magic:02X} in message {index}")
        return n_messages
