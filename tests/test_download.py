"""
Tests for the GEO supplementary file download (network mocked).
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from acquisition.geo_download import GEOSupplementDownloader


@pytest.fixture
def downloader(tmp_path):
    return GEOSupplementDownloader("GSE173955", "GSE173955_processed_data.xlsx",
                                   raw_dir=str(tmp_path / "raw"))


class TestGEOSupplementDownloader:

    def test_url_uses_series_stub(self, downloader):
        assert downloader.supplement_url() == (
            "https://ftp.ncbi.nlm.nih.gov/geo/series/GSE173nnn/GSE173955/suppl/"
            "GSE173955_processed_data.xlsx"
        )

    def test_short_accession_stub(self, tmp_path):
        dl = GEOSupplementDownloader("GSE12", "f.txt", raw_dir=str(tmp_path))
        assert dl.series_stub == "GSEnnn"

    def test_rejects_non_series_accession(self, tmp_path):
        with pytest.raises(ValueError):
            GEOSupplementDownloader("GSM1", "f.txt", raw_dir=str(tmp_path))

    @patch("acquisition.geo_download.requests.get")
    def test_download_writes_file(self, get, downloader):
        response = MagicMock()
        response.iter_content.return_value = [b"abc", b"", b"def"]
        get.return_value = response

        path = downloader.download()

        assert path.read_bytes() == b"abcdef"
        response.raise_for_status.assert_called_once()
        assert get.call_args.args[0] == downloader.supplement_url()

    @patch("acquisition.geo_download.requests.get")
    def test_cached_file_is_reused(self, get, downloader):
        downloader.raw_dir.mkdir(parents=True)
        downloader.local_path.write_bytes(b"cached")

        assert downloader.download() == downloader.local_path
        get.assert_not_called()

    @patch("acquisition.geo_download.requests.get")
    def test_http_error_aborts(self, get, downloader):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404")
        get.return_value = response

        with pytest.raises(requests.HTTPError):
            downloader.download()
        assert not downloader.local_path.exists()
