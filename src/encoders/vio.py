"""VIO pose record to JSON encoder."""

import json
import struct

from .base import BaseEncoder, EncodeError

VIO_MAGIC_NUMBER = 0x5455524B

# Packed vio_data_t
VIO_RECORD = struct.Struct("<Iiq3f9f21f3f21f3f3f3f9fIHBB")


def _matrix(values) -> list:
    return [list(values[row * 3 : row * 3 + 3]) for row in range(3)]


class VioEncoder(BaseEncoder):
    """Encodes the latest VIO pose record of a pipe chunk as JSON."""

    name = "vio"

    def encode(self, data: bytes) -> str:
        if not data or len(data) % VIO_RECORD.size != 0:
            raise EncodeError(f"{len(data)} bytes is not a whole number of VIO records")

        latest = data[-VIO_RECORD.size :]
        fields = VIO_RECORD.unpack(latest)
        if fields[0] != VIO_MAGIC_NUMBER:
            raise EncodeError(f"Invalid VIO magic number 0x{fields[0]:08X}")

        position = fields[3:6]
        rotation = fields[6:15]
        velocity = fields[36:39]
        angular_velocity = fields[60:63]
        gravity = fields[63:66]
        error_code, n_feature_points, state = fields[78:81]

        return json.dumps(
            {
                "quality": fields[1],
                "timestamp_ns": fields[2],
                "T_imu_wrt_vio": list(position),
                "R_imu_to_vio": _matrix(rotation),
                "vel_imu_wrt_vio": list(velocity),
                "imu_angular_vel": list(angular_velocity),
                "gravity_vector": list(gravity),
                "error_code": error_code,
                "n_feature_points": n_feature_points,
                "state": state,
            }
        )
