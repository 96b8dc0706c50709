"""Per-round SecAgg+ session parameters."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidParameters
from .masking import SECAGG_PLUS_MOD_RANGE
from .shamir import DEFAULT_FIELD_SIZE

DEFAULT_CLIPPING_RANGE = 3.0
DEFAULT_TARGET_RANGE = 1 << 16
MAX_MOD_RANGE = 1 << 32


@dataclass
class SecAggPlusConfig:
    """Configuration for the SecAgg+ protocol.

    Follows the Flower SecAgg+ parameter naming.  The server sends
    ``clipping_range``, ``target_range`` and ``mod_range`` with the session.
    """

    session_id: str
    round_id: str
    threshold: int  # Shamir reconstruction threshold
    total_clients: int  # Total number of participating clients
    my_index: int  # 1-based index of this client
    clipping_range: float = DEFAULT_CLIPPING_RANGE  # Symmetric clip range for quantization
    target_range: int = DEFAULT_TARGET_RANGE  # Quantization target range
    mod_range: int = SECAGG_PLUS_MOD_RANGE  # Modular arithmetic range for masks
    # Shamir still uses a large prime for share reconstruction.
    field_size: int = DEFAULT_FIELD_SIZE

    def __post_init__(self) -> None:
        if self.total_clients < 1:
            raise InvalidParameters(f"total_clients must be >= 1, got {self.total_clients}")
        if not 1 <= self.threshold <= self.total_clients:
            raise InvalidParameters(
                f"threshold must be in [1, total_clients], "
                f"got t={self.threshold} n={self.total_clients}"
            )
        if not 1 <= self.my_index <= self.total_clients:
            raise InvalidParameters(
                f"my_index must be in [1, {self.total_clients}], got {self.my_index}"
            )
        # Masked elements travel as uint32 words.
        if not 2 <= self.mod_range <= MAX_MOD_RANGE:
            raise InvalidParameters(
                f"mod_range must be in [2, 2**32], got {self.mod_range}"
            )
        if self.clipping_range < 0:
            raise InvalidParameters("clipping_range must be >= 0")
        if self.target_range < 0:
            raise InvalidParameters("target_range must be >= 0")
        if self.target_range >= self.mod_range:
            raise InvalidParameters(
                f"target_range must be below mod_range, "
                f"got target_range={self.target_range} mod_range={self.mod_range}"
            )

    @classmethod
    def from_session_info(
        cls,
        info: Mapping[str, Any],
        my_index: Optional[int] = None,
    ) -> "SecAggPlusConfig":
        """Build a config from the session dict returned by the coordination server.

        *my_index* overrides the index carried in the payload (``my_index``
        or ``participant_index``).
        """
        index = my_index
        if index is None:
            index = info.get("my_index", info.get("participant_index"))
        if index is None:
            raise InvalidParameters("Session info does not carry this client's index")
        try:
            return cls(
                session_id=str(info.get("session_id", "")),
                round_id=str(info.get("round_id", "")),
                threshold=int(info["threshold"]),
                total_clients=int(info["total_clients"]),
                my_index=int(index),
                clipping_range=float(info.get("clipping_range", DEFAULT_CLIPPING_RANGE)),
                target_range=int(info.get("target_range", DEFAULT_TARGET_RANGE)),
                mod_range=int(info.get("mod_range", SECAGG_PLUS_MOD_RANGE)),
                field_size=int(info.get("field_size", DEFAULT_FIELD_SIZE)),
            )
        except KeyError as exc:
            raise InvalidParameters(f"Session info missing required key {exc}") from exc
        except InvalidParameters:
            raise
        except (TypeError, ValueError) as exc:
            raise InvalidParameters(f"Malformed session info: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
