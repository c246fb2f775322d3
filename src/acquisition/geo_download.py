"""
GEO Supplementary File Download
===============================

Fetches a series supplementary file from the GEO FTP site (served over
HTTPS). The download is synchronous and a failure aborts the run; an
already downloaded file is reused.
"""

import requests
from pathlib import Path
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class GEOSupplementDownloader:
    """Download a single supplementary file of a GEO series."""

    GEO_SERIES_URL = "https://ftp.ncbi.nlm.nih.gov/geo/series"

    def __init__(
        self,
        accession: str,
        filename: str,
        raw_dir: str,
        base_url: str = GEO_SERIES_URL,
        timeout: int = 300
    ):
        if not accession.upper().startswith('GSE'):
            raise ValueError(f"Not a GEO series accession: {accession}")

        self.accession = accession.upper()
        self.filename = filename
        self.raw_dir = Path(raw_dir)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    @property
    def series_stub(self) -> str:
        """GEO groups series by thousands, e.g. GSE173955 -> GSE173nnn."""
        digits = self.accession[3:]
        if len(digits) <= 3:
            return "GSEnnn"
        return f"GSE{digits[:-3]}nnn"

    def supplement_url(self) -> str:
        return f"{self.base_url}/{self.series_stub}/{self.accession}/suppl/{self.filename}"

    @property
    def local_path(self) -> Path:
        return self.raw_dir / self.filename

    def download(self, force: bool = False) -> Path:
        """
        Download the supplementary file.

        Parameters
        ----------
        force : bool
            Re-download even when the file already exists locally

        Returns
        -------
        Path
            Local path of the downloaded file
        """
        target = self.local_path
        if target.exists() and not force:
            logger.info(f"Using cached file {target}")
            return target

        self.raw_dir.mkdir(parents=True, exist_ok=True)
        url = self.supplement_url()
        logger.info(f"Downloading {url}")

        response = requests.get(url, stream=True, timeout=self.timeout)
        response.raise_for_status()

        partial = target.with_name(target.name + '.part')
        n_bytes = 0
        with open(partial, 'wb') as f:
            for chunk in response.iter_content(chunk_size=1 << 20):
                if chunk:
                    f.write(chunk)
                    n_bytes += len(chunk)
        partial.replace(target)

        logger.info(f"Saved {n_bytes / 1e6:.1f} MB to {target}")
        return target
