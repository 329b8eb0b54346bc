from dmarc_analyzer.headers import Headers


def test_lookup_ignores_case():
    headers = Headers.of([("Content-Type", "text/plain")])
    assert headers["content-type"] == "text/plain"
    assert headers["CONTENT-TYPE"] == "text/plain"
    assert "content-TYPE" in headers
    assert headers.get("subject") is None


def test_last_write_wins_and_keeps_latest_spelling():
    headers = Headers()
    headers["subject"] = "first"
    headers["Subject"] = "second"
    assert len(headers) == 1
    assert headers["SUBJECT"] == "second"
    assert list(headers) == ["Subject"]


def test_delete_ignores_case():
    headers = Headers.of([("To", "a@example.com"), ("From", "b@example.com")])
    del headers["to"]
    assert list(headers.items()) == [("From", "b@example.com")]


def test_set_or_remove():
    headers = Headers.of([("Content-Disposition", "inline")])
    headers.set_or_remove("content-disposition", None)
    headers.set_or_remove("Content-Transfer-Encoding", None)
    headers.set_or_remove("Content-Type", "text/plain")
    assert dict(headers) == {"Content-Type": "text/plain"}


def test_equality_ignores_case_of_names():
    assert Headers.of([("To", "x")]) == Headers.of([("to", "x")])
    assert Headers.of([("To", "x")]) != Headers.of([("To", "y")])


def test_render_preserves_insertion_order():
    headers = Headers.of([("To", "a@example.com"), ("Subject", "Hi")])
    headers["to"] = "b@example.com"
    assert headers.render() == "to: b@example.com\r\nSubject: Hi\r\n"
