import base64

import pytest

from achdispatch.output.formatters import (
    Base64Formatter,
    EncryptedFormatter,
    NachaFormatter,
    TransformResult,
    new_formatter,
)

RECORDS = [
    "101 076401251 076401251080729".ljust(94),
    "5225Name on Account".ljust(94),
    "9000001".ljust(94),
]


def result():
    return TransformResult(file=list(RECORDS))


def test_nacha():
    out = NachaFormatter().format(result()).decode()
    assert out.startswith("101 076401251 076401251080729")
    assert out.count("\n") == len(RECORDS)
    assert "\r\n" not in out


def test_nacha_crlf():
    out = NachaFormatter(line_ending="\r\n").format(result()).decode()
    assert "\r\n" in out
    assert out.split("\r\n")[:-1] == RECORDS


def test_nacha_rejects_bad_records():
    with pytest.raises(ValueError, match="unable to write Nacha file"):
        NachaFormatter().format(TransformResult(file=["short"]))
    with pytest.raises(ValueError, match="unable to write Nacha file"):
        NachaFormatter().format(TransformResult())


def test_base64():
    out = Base64Formatter().format(result())
    assert out.startswith(b"MTAxIDA3NjQwMTI1MSAwNzY0MDEyNTE")
    assert base64.b64decode(out) == NachaFormatter().format(result())


def test_base64_encrypted():
    res = result()
    res.encrypted = b"hello, world"
    out = Base64Formatter().format(res)
    assert out.startswith(b"aGVsbG8sIHdvcmxk")


def test_encrypted():
    res = result()
    res.encrypted = b"hello, world"
    assert EncryptedFormatter().format(res) == b"hello, world"


def test_unknown_format():
    with pytest.raises(ValueError, match="unknown output format"):
        new_formatter("other")


def test_default_format_is_nacha():
    assert new_formatter(None).format(result()) == NachaFormatter().format(result())
    assert new_formatter("").format(result()) == NachaFormatter().format(result())


def test_named_formats():
    assert b"\r\n" in new_formatter("NACHA-CRLF").format(result())
    crlf = new_formatter("base64-crlf").format(result())
    assert b"\r\n" in base64.b64decode(crlf)
    res = result()
    res.encrypted = b"hello, world"
    assert new_formatter("Encrypted-Bytes").format(res) == b"hello, world"