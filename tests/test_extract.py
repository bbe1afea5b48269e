from kouen_watch.extract import (
    absolute_url,
    extract_error_message,
    extract_form_action,
    extract_hidden_fields,
    extract_links,
    extract_login_form,
    extract_tables,
    keyword_predicate,
)


def test_form_action_with_attributes_in_any_order():
    html = "<form name='f' method=post action='/web/login.do?x=1&amp;y=2'><input></form>"
    assert extract_form_action(html) == "/web/login.do?x=1&y=2"


def test_form_action_missing_is_empty():
    assert extract_form_action("<form method='post'></form>") == ""
    assert extract_form_action("") == ""


def test_hidden_fields_any_order_and_quotes():
    html = """
    <input type="hidden" name="a" value="1">
    <input value='2' name='b' type='HIDDEN'/>
    <input name="c" type="hidden">
    <input type="text" name="userId" value="visible">
    <input type="hidden" name="a" value="last">
    """
    assert extract_hidden_fields(html) == {"a": "last", "b": "2", "c": ""}


def test_login_form_combines_action_and_fields():
    html = '<form action="submit.do"><input type="hidden" name="token" value="t"></form>'
    form = extract_login_form(html)

    assert form.action_url == "submit.do"
    assert form.hidden_fields == {"token": "t"}


def test_links_match_visible_text_with_nested_markup():
    html = """
    <a href="a.do">マイページ</a>
    <a class="x" href="/web/tennis.do"><img src="i.png"><span>テニス</span>
       コート</a>
    <a href="b.do">TENNIS school</a>
    <a name="anchor-only">テニス</a>
    """
    links = extract_links(html, keyword_predicate(["テニス", "tennis"]))

    assert [link.href for link in links] == ["/web/tennis.do", "b.do"]
    assert links[0].text == "テニス コート"


def test_links_without_predicate_returns_all_with_href():
    html = '<a href="1">one</a><a href="2">two</a>'
    assert [link.text for link in extract_links(html)] == ["one", "two"]


def test_tables_strip_markup_and_unescape():
    html = """
    <table border=1>
      <tr><th>Court</th><th>Status</th></tr>
      <tr><td><b>A&nbsp;コート</b></td><td>
         <span class="ok">○</span>  空き </td></tr>
    </table>
    """
    tables = extract_tables(html)

    assert len(tables) == 1
    assert tables[0][1][0] == "A コート"
    assert tables[0][1][1] == "○ 空き"
    assert tables[0][0] == ["Court", "Status"]


def test_tables_tolerate_missing_closers():
    html = "<table><tr><td>Aコート<td>○<tr><td>Bコート<td>×</table><table><tr><td>x<td>y"
    tables = extract_tables(html)

    assert tables == [[["Aコート", "○"], ["Bコート", "×"]], [["x", "y"]]]


def test_no_tables_yields_empty_list():
    assert extract_tables("<div>nothing here</div>") == []


def test_error_message_from_error_class_element():
    html = '<div class="box"></div><span class="msg errorText">ID または<br>パスワードが違います</span>'
    assert extract_error_message(html) == "ID または パスワードが違います"


def test_error_message_absent():
    assert extract_error_message("<p>ok</p>") is None


def test_extraction_never_raises_on_garbage():
    garbage = "<<form action=<input type=hidden name=>><table><tr><td><a href=>"
    extract_login_form(garbage)
    extract_links(garbage)
    extract_tables(garbage)
    extract_error_message(garbage)


def test_absolute_url_resolution():
    base = "https://kouen.example.jp/web/menu.do?x=1"

    assert absolute_url(base, "tennis.do") == "https://kouen.example.jp/web/tennis.do"
    assert absolute_url(base, "/other/a.do") == "https://kouen.example.jp/other/a.do"
    assert absolute_url(base, "https://elsewhere.jp/") == "https://elsewhere.jp/"
    assert absolute_url(base, "") == base
