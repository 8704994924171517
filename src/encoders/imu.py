"""IMU sample to JSON encoder."""

import json
import struct

from .base import BaseEncoder, EncodeError

IMU_MAGIC_NUMBER = 0x5455524B

# Packed imu_data_t: magic, accl_ms2[3], gyro_rad[3], temp_c, timestamp_ns
IMU_RECORD = struct.Struct("<I3f3ffQ")


class ImuEncoder(BaseEncoder):
    """Encodes the latest IMU sample of a pipe chunk as JSON."""

    name = "imu"

    def encode(self, data: bytes) -> str:
        if not data or len(data) % IMU_RECORD.size != 0:
            raise EncodeError(f"{len(data)} bytes is not a whole number of IMU records")

        fields = IMU_RECORD.unpack(data[-IMU_RECORD.size :])
        if fields[0] != IMU_MAGIC_NUMBER:
            raise EncodeError(f"Invalid IMU magic number 0x{fields[0]:08X}")

        return json.dumps(
            {
                "accl_ms2": list(fields[1:4]),
                "gyro_rad": list(fields[4:7]),
                "temp_c": fields[7],
                "timestamp_ns": fields[8],
            }
        )
