import gzip
import logging
from typing import List, Dict, Optional, Union, Any
from lxml import etree # Using lxml for robust parsing and namespace handling

logger = logging.getLogger(__name__)

SITEMAP_NS = {
    'sm': 'http://www.sitemaps.org/schemas/sitemap/0.9',
}

GZIP_MAGIC = b"\x1f\x8b"

# Namespace-agnostic paths: some generators omit the sitemaps.org xmlns
_SITEMAP_LOC_XPATH = "//*[local-name()='sitemap']"
_URL_XPATH = "//*[local-name()='url']"


def _child_text(element: etree._Element, name: str) -> Optional[str]:
    for child in element:
        if isinstance(child.tag, str) and etree.QName(child.tag).localname == name:
            if child.text and child.text.strip():
                return child.text.strip()
    return None


class SitemapParser:
    def parse_sitemap(self, content: Union[bytes, str], sitemap_url: str = "") -> Dict[str, Any]:
        """
        Parses the given XML sitemap content.

        Determines if it's a sitemap index or a URL set and extracts relevant data.

        Args:
            content: The sitemap body (bytes as fetched, optionally gzipped, or str).
            sitemap_url: The URL from which this sitemap was fetched (for logging/context).

        Returns:
            A dictionary with:
                'type': 'sitemapindex' or 'urlset' or 'error'
                'urls': A list of {'loc', 'lastmod'} dictionaries (child sitemaps for an
                        index, pages for a urlset). None if error.
                'error_message': A string describing the error, if any.
        """
        if not content:
            logger.error(f"Cannot parse empty XML content (from {sitemap_url}).")
            return {"type": "error", "urls": None, "error_message": "Empty XML content"}

        if isinstance(content, str):
            content = content.strip().encode('utf-8')
        elif content[:2] == GZIP_MAGIC:
            try:
                content = gzip.decompress(content)
            except OSError as e:
                return {"type": "error", "urls": None, "error_message": f"Bad gzip data: {e}"}

        try:
            # recover mode attempts to parse even mildly malformed XML
            parser = etree.XMLParser(recover=True, remove_blank_text=True, resolve_entities=False)
            root = etree.fromstring(content.strip(), parser=parser)
        except etree.XMLSyntaxError as e:
            logger.error(f"XML syntax error while parsing sitemap from {sitemap_url}: {e}")
            return {"type": "error", "urls": None, "error_message": f"XMLSyntaxError: {e}"}

        if root is None:
            msg = f"No XML document could be recovered from {sitemap_url}."
            logger.error(msg)
            return {"type": "error", "urls": None, "error_message": msg}

        # The localname part extracts tag name without namespace
        root_tag_name = etree.QName(root.tag).localname

        if root_tag_name == 'sitemapindex':
            logger.debug(f"Parsing as sitemap index: {sitemap_url}")
            return {"type": "sitemapindex", "urls": self._extract_entries(root, _SITEMAP_LOC_XPATH), "error_message": None}
        elif root_tag_name == 'urlset':
            logger.debug(f"Parsing as URL set: {sitemap_url}")
            return {"type": "urlset", "urls": self._extract_entries(root, _URL_XPATH), "error_message": None}

        logger.warning(
            f"Unknown root tag '{root.tag}' in sitemap from {sitemap_url}. Attempting to find URLs."
        )
        # Fallback: try to find urlset or sitemapindex tags anyway
        if root.xpath(_SITEMAP_LOC_XPATH):
            return {"type": "sitemapindex", "urls": self._extract_entries(root, _SITEMAP_LOC_XPATH),
                    "error_message": "Unknown root, but sitemap tags found"}
        elif root.xpath(_URL_XPATH):
            return {"type": "urlset", "urls": self._extract_entries(root, _URL_XPATH),
                    "error_message": "Unknown root, but url tags found"}

        msg = f"Unknown root element '{root.tag}' and no sitemap/url tags found in {sitemap_url}."
        logger.error(msg)
        return {"type": "error", "urls": None, "error_message": msg}

    def _extract_entries(self, root_element: etree._Element, xpath: str) -> List[Dict[str, Optional[str]]]:
        """Extracts {'loc', 'lastmod'} from <sitemap> or <url> elements."""
        entries = []
        for element in root_element.xpath(xpath):
            loc = _child_text(element, 'loc')
            if not loc:
                # An entry without a <loc> is invalid according to sitemap protocol, skip it.
                logger.warning("Skipping sitemap entry without <loc> tag.")
                continue
            entries.append({'loc': loc, 'lastmod': _child_text(element, 'lastmod')})
        logger.debug(f"Extracted {len(entries)} entries.")
        return entries
