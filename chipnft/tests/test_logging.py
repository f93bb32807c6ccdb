import io
import json
import logging

import pytest

from chipnft import logging as clog
from chipnft.errors import InvalidSignature

from conftest import ALICE


def test_json_lines_carry_context_and_extras():
    buf = io.StringIO()
    clog.configure(json=True, level="DEBUG", stream=buf)
    log = clog.get_logger("chipnft.test")
    with clog.trace_scope("t-1"):
        clog.bind(op="mint", public_key=b"\x04\x01")
        log.info("hello", extra={"token_id": 3})
    line = json.loads(buf.getvalue().strip())
    assert line["msg"] == "hello"
    assert line["trace_id"] == "t-1"
    assert line["op"] == "mint"
    assert line["public_key"] == "0401"
    assert line["token_id"] == 3
    assert clog.context() == {}


def test_text_format_is_one_line():
    buf = io.StringIO()
    clog.configure(json=False, level="INFO", stream=buf)
    with clog.trace_scope():
        clog.get_logger("x").warning("careful", extra={"n": 1})
    out = buf.getvalue()
    assert out.count("\n") == 1
    assert "| WARNING | chipnft.x | trace_id=" in out
    assert out.rstrip().endswith("careful n=1")


def test_level_filters():
    buf = io.StringIO()
    clog.configure(json=True, level="WARNING", stream=buf)
    clog.get_logger().info("quiet")
    assert buf.getvalue() == ""


def test_bind_unbind():
    clog.bind(a=1, b=2)
    clog.unbind("a")
    assert clog.context() == {"b": 2}
    clog.clear_context()
    assert clog.context() == {}


def test_get_logger_namespacing():
    assert clog.get_logger().name == "chipnft"
    assert clog.get_logger("chipnft.contract").name == "chipnft.contract"
    assert clog.get_logger("tools").name == "chipnft.tools"


def test_file_handler_writes_json(tmp_path):
    path = tmp_path / "logs" / "chipnft.log"
    clog.configure(json=False, level="INFO", stream=io.StringIO(), file_path=path)
    clog.get_logger().info("persisted")
    for h in logging.getLogger("chipnft").handlers:
        h.flush()
    assert json.loads(path.read_text().strip())["msg"] == "persisted"


def test_calls_are_logged(collection, chip, signed, minted, caplog):
    with caplog.at_level(logging.INFO, logger="chipnft"):
        collection.claim(ALICE, *signed(chip, b"m2", 2))
    committed = [r for r in caplog.records if r.getMessage() == "call committed"]
    assert committed and committed[0].events == 1


def test_aborted_calls_are_logged(collection, chip, signed, minted, caplog):
    with caplog.at_level(logging.INFO, logger="chipnft"):
        with pytest.raises(InvalidSignature):
            collection.claim(ALICE, *signed(chip, b"m2", 1))
    aborted = [r for r in caplog.records if r.getMessage() == "call aborted"]
    assert aborted and aborted[0].error == "invalid_signature"
