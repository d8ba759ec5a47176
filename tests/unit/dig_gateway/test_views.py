from dig_gateway import views
from dig_gateway.models import StoreState
from dig_gateway.udi import Udi

from tests.helpers.fakes import ROOT_V1, STORE_ID


def test_format_bytes():
    assert views.format_bytes(0) == "0 Bytes"
    assert views.format_bytes(512) == "512 Bytes"
    assert views.format_bytes(2048) == "2.00 KB"
    assert views.format_bytes(5 * 1024 ** 3) == "5.00 GB"


def test_store_row_escapes_untrusted_metadata():
    state = StoreState(root_hash=ROOT_V1, label="<script>x</script>", description="a & b", size_bytes=10)
    row = views.render_store_row(Udi(chain_name="chia", store_id=STORE_ID), state, "gw.local")
    assert "<script>" not in row
    assert "&lt;script&gt;" in row
    assert "a &amp; b" in row
    assert "10 Bytes" in row


def test_store_row_while_syncing_has_placeholders():
    row = views.render_store_row(Udi(chain_name="chia", store_id=STORE_ID), None, "")
    assert "Syncing..." in row
    assert "View as Webapp" not in row


def test_keys_index_links():
    html = views.render_keys_index(STORE_ID, [("a b.txt", f"/chia.{STORE_ID}.{ROOT_V1}/a%20b.txt")])
    assert f'href="/chia.{STORE_ID}.{ROOT_V1}/a%20b.txt"' in html
    assert ">a b.txt<" in html


def test_syncing_page_auto_refreshes():
    html = views.render_syncing(STORE_ID, None)
    assert '<meta http-equiv="refresh" content="10">' in html
    assert "No Label" in html
