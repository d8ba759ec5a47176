import pytest

from core_logging.error_codes import ErrorCode
from dig_gateway.challenge import ChallengeResponder
from dig_gateway.errors import ChallengeMismatch
from dig_gateway.udi import Udi

from tests.helpers.fakes import OTHER_STORE_ID, ROOT_V1, ROOT_V2, STORE_ID, FakeChallengeProtocol

UDI = Udi(chain_name="chia", store_id=STORE_ID, root_hash=ROOT_V1, resource_key="data.bin")


@pytest.fixture
def protocol():
    return FakeChallengeProtocol()


@pytest.mark.asyncio
async def test_bound_challenge_gets_a_response(protocol):
    token = protocol.issue("aa01", STORE_ID, "data.bin", ROOT_V1)
    out = await ChallengeResponder(protocol).respond(token, UDI)
    assert isinstance(out, bytes) and len(out) == 32
    assert protocol.responses == [(STORE_ID, "data.bin".encode().hex(), ROOT_V1, token)]


@pytest.mark.asyncio
@pytest.mark.parametrize("store_id,key,root_hash,field", [
    (OTHER_STORE_ID, "data.bin", ROOT_V1, "store"),
    (STORE_ID, "other.bin", ROOT_V1, "key"),
    (STORE_ID, "data.bin", ROOT_V2, "version"),
    # Several mismatches: the store check runs first
    (OTHER_STORE_ID, "other.bin", ROOT_V2, "store"),
])
async def test_mismatched_binding_is_rejected(protocol, store_id, key, root_hash, field):
    token = protocol.issue("aa02", store_id, key, root_hash)
    with pytest.raises(ChallengeMismatch) as exc_info:
        await ChallengeResponder(protocol).respond(token, UDI)
    assert exc_info.value.field == field
    assert exc_info.value.status_code == 400
    assert protocol.responses == []


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["zz", "abc", "ffff"])
async def test_malformed_token(protocol, token):
    # "ffff" is valid hex but the protocol cannot decode it
    with pytest.raises(ChallengeMismatch) as exc_info:
        await ChallengeResponder(protocol).respond(token, UDI)
    assert exc_info.value.field == "malformed"
    assert exc_info.value.code is ErrorCode.challenge_malformed
