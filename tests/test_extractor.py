from pipelines.extractor import ContentExtractor, collapse_whitespace

from conftest import make_post_html


def test_collapse_whitespace():
    assert collapse_whitespace("  a\n\n b\t c  ") == "a b c"
    assert collapse_whitespace(None) == ""


class TestContentExtractor:
    def test_prefers_article_and_drops_chrome(self):
        text = ContentExtractor().extract(make_post_html(body_words=80, title="Leverage"))

        assert text.startswith("Leverage word0 word1")
        assert "Site header" not in text
        assert "Home Archive" not in text
        assert "Footer text" not in text
        assert "var x" not in text

    def test_falls_through_short_selector_matches(self):
        html = (
            "<html><body><article>tiny</article>"
            "<div class='entry-content'>" + "long text " * 40 + "</div></body></html>"
        )
        text = ContentExtractor().extract(html)
        assert text.startswith("long text")
        assert "tiny" not in text

    def test_falls_back_to_body_text(self):
        html = "<html><body><div><p>" + "plain " * 60 + "</p></div><footer>f</footer></body></html>"
        text = ContentExtractor().extract(html)
        assert text == ("plain " * 60).strip()

    def test_nested_chrome_is_removed_once(self):
        html = (
            "<html><body><header><nav>menu</nav><form>search</form></header>"
            "<article>" + "body " * 60 + "</article></body></html>"
        )
        text = ContentExtractor().extract(html)
        assert "menu" not in text
        assert "search" not in text

    def test_selector_order_is_configurable(self):
        html = (
            "<html><body><article>" + "article " * 40 + "</article>"
            "<div class='post'>" + "post " * 60 + "</div></body></html>"
        )
        text = ContentExtractor(selectors=(".post", "article")).extract(html)
        assert text.startswith("post post")

    def test_has_enough_content_threshold(self):
        extractor = ContentExtractor(min_length=200)
        assert not extractor.has_enough_content("x" * 199)
        assert extractor.has_enough_content("x" * 200)
        assert not extractor.has_enough_content("")

    def test_empty_page(self):
        assert ContentExtractor().extract("") == ""
