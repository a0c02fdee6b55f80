"""GridFS adapter addressing and the public file route."""
from unittest.mock import patch

from services.storage_adapter import GridFSStorageAdapter


def test_public_url_uses_api_base(monkeypatch):
    monkeypatch.setenv("PUBLIC_API_URL", "https://api.ai-chatflows.com/")
    url = GridFSStorageAdapter().get_public_url("menus", "menus/1700000000000-abc123defg.pdf")
    assert url == "https://api.ai-chatflows.com/api/files/menus/menus/1700000000000-abc123defg.pdf"


def test_public_url_quotes_path(monkeypatch):
    monkeypatch.setenv("PUBLIC_API_URL", "https://api.ai-chatflows.com")
    url = GridFSStorageAdapter().get_public_url("documents", "documents/a b.pdf")
    assert url.endswith("/api/files/documents/documents/a%20b.pdf")


class TestFileRoute:

    def test_serves_stored_file(self, client, fake_storage):
        fake_storage.objects[("menus", "menus/1-abc.pdf")] = (b"%PDF-1.4", "application/pdf")
        with patch("routes.files.storage_adapter", fake_storage):
            response = client.get("/api/files/menus/menus/1-abc.pdf")
        assert response.status_code == 200
        assert response.content == b"%PDF-1.4"
        assert response.headers["content-type"] == "application/pdf"

    def test_head_returns_headers_only(self, client, fake_storage):
        fake_storage.objects[("faqs", "faqs/2-abc.txt")] = (b"Q and A", "text/plain")
        with patch("routes.files.storage_adapter", fake_storage):
            response = client.head("/api/files/faqs/faqs/2-abc.txt")
        assert response.status_code == 200
        assert response.headers["content-length"] == "7"

    def test_missing_file_is_404(self, client, fake_storage):
        with patch("routes.files.storage_adapter", fake_storage):
            response = client.get("/api/files/menus/menus/nope.pdf")
        assert response.status_code == 404

    def test_unknown_bucket_is_404(self, client):
        assert client.get("/api/files/secrets/x.pdf").status_code == 404
