import json
import os
import tempfile
import unittest
from unittest import mock

from jellyrpc import imgur


class _FakeResponse:
    def __init__(self, payload=None, content=b"", status_code=200):
        self._payload = payload
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        return None

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class ResolveTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = os.path.join(self._tmp.name, "urls.json")

    def _write_cache(self, data):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def _read_cache(self):
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    @mock.patch("jellyrpc.imgur.get_session")
    @mock.patch("jellyrpc.imgur.http_get")
    def test_cache_hit_makes_no_network_call(self, mock_get, mock_session):
        self._write_cache({"abc": "http://img/1"})

        for _ in range(3):
            self.assertEqual("http://img/1", imgur.resolve("abc", "http://jf/Items/abc", "cid", self.path))

        mock_get.assert_not_called()
        mock_session.assert_not_called()

    @mock.patch("jellyrpc.imgur.upload_image", return_value="https://i.imgur.com/new.jpg")
    @mock.patch("jellyrpc.imgur.download_image", return_value=b"poster")
    def test_miss_uploads_once_then_hits(self, mock_download, mock_upload):
        self._write_cache({"other": "https://i.imgur.com/old.jpg"})

        first = imgur.resolve("xyz", "http://jf/Items/xyz", "cid", self.path, True)
        second = imgur.resolve("xyz", "http://jf/Items/xyz", "cid", self.path)

        self.assertEqual("https://i.imgur.com/new.jpg", first)
        self.assertEqual(first, second)
        mock_download.assert_called_once_with("http://jf/Items/xyz", True)
        mock_upload.assert_called_once_with(b"poster", "cid")
        self.assertEqual(
            {"other": "https://i.imgur.com/old.jpg", "xyz": "https://i.imgur.com/new.jpg"},
            self._read_cache(),
        )

    @mock.patch("jellyrpc.imgur.upload_image", return_value="https://i.imgur.com/a.png")
    @mock.patch("jellyrpc.imgur.download_image", return_value=b"png")
    def test_missing_cache_file_is_bootstrapped(self, _download, _upload):
        path = os.path.join(self._tmp.name, "nested", "dir", "urls.json")

        cache = imgur.ImageCache(path).load()
        self.assertEqual({}, cache.urls)
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual({}, json.load(f))

        self.assertEqual("https://i.imgur.com/a.png", imgur.resolve("id1", "http://jf/x", "cid", path))
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual({"id1": "https://i.imgur.com/a.png"}, json.load(f))
        self.assertEqual(["urls.json"], os.listdir(os.path.dirname(path)))

    def test_non_string_entry_is_treated_as_miss(self):
        self._write_cache({"abc": 42})
        with mock.patch("jellyrpc.imgur.download_image", return_value=b"x"), \
                mock.patch("jellyrpc.imgur.upload_image", return_value="https://i.imgur.com/b.jpg") as mock_upload:
            self.assertEqual("https://i.imgur.com/b.jpg", imgur.resolve("abc", "http://jf/abc", "cid", self.path))
        mock_upload.assert_called_once()

    def test_missing_client_id_on_miss(self):
        self._write_cache({})
        with mock.patch("jellyrpc.imgur.download_image") as mock_download:
            with self.assertRaises(imgur.MissingCredential):
                imgur.resolve("abc", "http://jf/abc", None, self.path)
        mock_download.assert_not_called()

    def test_cache_that_is_not_an_object(self):
        self._write_cache(["not", "a", "mapping"])
        with self.assertRaises(imgur.CacheFormatError):
            imgur.resolve("abc", "http://jf/abc", "cid", self.path)

    def test_cache_with_broken_json(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{\"abc\": ")
        with self.assertRaises(imgur.CacheFormatError):
            imgur.resolve("abc", "http://jf/abc", "cid", self.path)

    @mock.patch("jellyrpc.imgur.upload_image", side_effect=imgur.InvalidResponse("no link"))
    @mock.patch("jellyrpc.imgur.download_image", return_value=b"x")
    def test_failed_upload_leaves_cache_untouched(self, _download, _upload):
        self._write_cache({"keep": "https://i.imgur.com/k.jpg"})
        with self.assertRaises(imgur.InvalidResponse):
            imgur.resolve("abc", "http://jf/abc", "cid", self.path)
        self.assertEqual({"keep": "https://i.imgur.com/k.jpg"}, self._read_cache())

    def test_default_path_follows_xdg(self):
        with mock.patch.dict(os.environ, {"XDG_CONFIG_HOME": "/tmp/xdg"}), \
                mock.patch("jellyrpc.config.sys.platform", "linux"):
            self.assertEqual(os.path.join("/tmp/xdg", "jellyfin-rpc", "urls.json"), imgur.get_urls_path())


class UploadTests(unittest.TestCase):
    @mock.patch("jellyrpc.imgur.get_session")
    def test_upload_returns_data_link(self, mock_session):
        mock_session.return_value.post.return_value = _FakeResponse(
            {"data": {"link": "https://i.imgur.com/z.jpg"}, "success": True}
        )

        self.assertEqual("https://i.imgur.com/z.jpg", imgur.upload_image(b"bytes", "cid"))

        _, kwargs = mock_session.return_value.post.call_args
        self.assertEqual({"Authorization": "Client-ID cid"}, kwargs["headers"])
        self.assertEqual(b"bytes", kwargs["data"])

    @mock.patch("jellyrpc.imgur.get_session")
    def test_upload_without_link_is_invalid(self, mock_session):
        mock_session.return_value.post.return_value = _FakeResponse(
            {"data": {"error": "Invalid client_id"}, "success": False}, status_code=403
        )
        with self.assertRaises(imgur.InvalidResponse):
            imgur.upload_image(b"bytes", "bad")

    @mock.patch("jellyrpc.imgur.get_session")
    def test_upload_with_error_string_in_data_is_invalid(self, mock_session):
        mock_session.return_value.post.return_value = _FakeResponse(
            {"data": "Bad request", "success": False}, status_code=400
        )
        with self.assertRaises(imgur.InvalidResponse):
            imgur.upload_image(b"bytes", "cid")

    @mock.patch("jellyrpc.imgur.get_session")
    def test_upload_with_non_json_body_is_invalid(self, mock_session):
        mock_session.return_value.post.return_value = _FakeResponse(None, status_code=502)
        with self.assertRaises(imgur.InvalidResponse):
            imgur.upload_image(b"bytes", "cid")


if __name__ == "__main__":
    unittest.main()
