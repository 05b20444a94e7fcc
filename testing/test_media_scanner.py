"""
Tests for the media reference scanner and legacy content normalisation.

Usage:
    pytest testing/test_media_scanner.py
"""

import json

from odyssi.services.backup_document import BackupDocument, BackupScope
from odyssi.services.content_format import ContentKind, classify_content, normalize_content
from odyssi.services.media_scanner import (
    collect_document_references,
    collect_references,
    is_local_media_path,
)


def _nest(node, depth):
    for _ in range(depth):
        node = {"type": "blockquote", "content": [node]}
    return node


def test_local_and_remote_images():
    content = {
        "type": "doc",
        "content": [
            {"type": "image", "attrs": {"src": "/uploads/a.png"}},
            {"type": "image", "attrs": {"src": "https://example.com/remote.png"}},
            {"type": "paragraph", "content": [{"type": "text", "text": "/uploads/not-media.png"}]},
            {"type": "image", "attrs": {"src": "/uploads/b.png"}},
        ],
    }
    assert collect_references({"content": content}) == {"/uploads/a.png", "/uploads/b.png"}


def test_depth_does_not_matter():
    local = [_nest({"type": "image", "attrs": {"src": f"/uploads/{i}.png"}}, depth=i * 50) for i in range(5)]
    remote = [_nest({"type": "image", "attrs": {"src": f"http://cdn/{i}.png"}}, depth=i * 70) for i in range(3)]
    content = {"type": "doc", "content": local + remote}

    assert collect_references({"content": content}) == {f"/uploads/{i}.png" for i in range(5)}


def test_very_deep_tree():
    content = {"type": "doc", "content": [_nest({"type": "image", "attrs": {"src": "/uploads/deep.png"}}, 5000)]}
    assert collect_references({"content": content}) == {"/uploads/deep.png"}


def test_video_and_audio_nodes():
    content = {
        "type": "doc",
        "content": [
            {"type": "video", "attrs": {"src": "/uploads/clip.mp4"}},
            {"type": "audio", "attrs": {"url": "/uploads/voice.ogg"}},
        ],
    }
    assert collect_references({"content": content}) == {"/uploads/clip.mp4", "/uploads/voice.ogg"}


def test_malformed_nodes_are_skipped():
    content = {
        "type": "doc",
        "content": [
            None,
            "text",
            {"type": "image"},
            {"type": "image", "attrs": None},
            {"type": "image", "attrs": {"src": 42}},
            {"type": "image", "attrs": {"src": "/uploads/ok.png"}},
        ],
    }
    assert collect_references({"content": content}) == {"/uploads/ok.png"}


def test_flat_media_fields():
    assert collect_references({"featured_image": "/uploads/hero.png"}) == {"/uploads/hero.png"}
    assert collect_references({"cover_image": "/uploads/cover.png"}) == {"/uploads/cover.png"}
    assert collect_references({"image": "/uploads/avatar.png"}) == {"/uploads/avatar.png"}
    assert collect_references({"image": "https://gravatar.example/x"}) == set()
    assert collect_references({"images": [{"url": "/uploads/asset.png"}, {"url": None}]}) == {"/uploads/asset.png"}


def test_markdown_and_json_string_content():
    markdown = {"type": "markdown", "text": "Hello\n\n![beach](/uploads/beach.jpg)\n\n![x](https://remote/x.jpg)"}
    assert collect_references({"content": markdown}) == {"/uploads/beach.jpg"}

    encoded = json.dumps({"type": "doc", "content": [{"type": "image", "attrs": {"src": "/uploads/s.png"}}]})
    assert collect_references({"content": encoded}) == {"/uploads/s.png"}


def test_document_references():
    document = BackupDocument(
        scope=BackupScope.INSTALLATION,
        created_at="2024-01-01T00:00:00.000Z",
        journals=[{
            "cover_image": "/uploads/cover.png",
            "entries": [{"content": {"type": "doc", "content": [{"type": "image", "attrs": {"src": "/uploads/e.png"}}]}}],
        }],
        loose_records={"blog_posts": [{"featured_image": "/uploads/post.png"}]},
        users=[{"image": "/uploads/me.png"}],
    )
    assert collect_document_references(document) == {
        "/uploads/cover.png", "/uploads/e.png", "/uploads/post.png", "/uploads/me.png",
    }


def test_is_local_media_path():
    assert is_local_media_path("/uploads/a.png")
    assert not is_local_media_path("uploads/a.png")
    assert not is_local_media_path(None)


def test_classify_content_variants():
    assert classify_content(None).kind == ContentKind.EMPTY
    assert classify_content("   ").kind == ContentKind.EMPTY
    assert classify_content("just words").kind == ContentKind.PLAIN_TEXT
    assert classify_content({"type": "doc", "content": []}).kind == ContentKind.TREE
    assert classify_content({"type": "markdown", "text": "# hi"}).kind == ContentKind.MARKDOWN
    assert classify_content('{"type": "markdown", "text": "x"}').kind == ContentKind.MARKDOWN
    assert classify_content("{not json").kind == ContentKind.PLAIN_TEXT


def test_normalize_plain_text():
    tree = normalize_content("First paragraph\n\nSecond")
    assert tree["type"] == "doc"
    assert [p["content"][0]["text"] for p in tree["content"]] == ["First paragraph", "Second"]


def test_normalize_keeps_trees():
    tree = {"type": "doc", "content": [{"type": "paragraph"}]}
    assert normalize_content(tree) == tree
    assert normalize_content(None) == {"type": "doc", "content": []}
