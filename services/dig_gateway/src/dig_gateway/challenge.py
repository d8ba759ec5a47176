from __future__ import annotations

from core_logging import get_logger, log_stage
from core_utils.ids import hex_encode_key

from .collaborators import ChallengeProtocol
from .errors import ChallengeMismatch
from .udi import Udi

logger = get_logger("dig_gateway.challenge")


class ChallengeResponder:
    """
    Checks that a challenge token is bound to the content being served, then
    lets the challenge protocol compute the answer.
    """

    def __init__(self, protocol: ChallengeProtocol):
        self._protocol = protocol

    async def respond(self, token: str, udi: Udi) -> bytes:
        try:
            bytes.fromhex(token)
            binding = await self._protocol.deserialize(token)
        except ValueError as exc:
            log_stage(logger, "challenge", "challenge.malformed", store_id=udi.store_id)
            raise ChallengeMismatch("malformed", "Malformed challenge.") from exc

        hex_key = hex_encode_key(udi.resource_key or "")
        # First mismatch wins
        if binding.store_id != udi.store_id:
            raise ChallengeMismatch("store", "Challenge store id does not match the requested store.")
        if binding.key != hex_key:
            raise ChallengeMismatch("key", "Challenge key does not match the requested key.")
        if binding.root_hash != udi.root_hash:
            raise ChallengeMismatch("version", "Challenge root hash does not match the requested version.")

        log_stage(logger, "challenge", "challenge.accepted", store_id=udi.store_id, root_hash=udi.root_hash)
        return await self._protocol.compute_response(udi.store_id, hex_key, udi.root_hash or "", token)


__all__ = ["ChallengeResponder"]
