"""
Cloud Disk Module - Share link and extraction code from pasted text.
===================================================================

Operators paste whatever the source site shows next to a download
("链接: https://pan.baidu.com/s/xxx 提取码: ab12"). This module pulls out:

- the share URL (must mention pan/yunpan/cloud/disk/quark)
- the extraction code after a 提取码/密码/访问码/验证码 label, or failing
  that any standalone 4-6 character alphanumeric token
- the provider, derived from the URL host

Text without a share URL is rejected outright; a code alone is useless.
"""

import re
from typing import Optional
from urllib.parse import urlparse

from ziyuanbao.shared.errors import CloudDiskLinkError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import CloudDiskLink, CloudDiskProvider

logger = get_logger(__name__)

# URL characters minus "," and ";", which separate pasted fields.
# A label glued to the link ("...abc提取码:a1b2") ends the URL at the CJK text.
_URL_CHARS = r"[A-Za-z0-9\-._~:/?#@!$&'()*+=%]"

URL_PATTERN = re.compile(
    r"(?:链接\s*[:：]\s*)?"
    rf"(https?://{_URL_CHARS}*?(?:pan|yunpan|cloud|disk|quark){_URL_CHARS}*)",
    re.IGNORECASE,
)
LABELLED_CODE_PATTERN = re.compile(
    r"(?:提取码|密码|访问码|验证码)[:：\s]*([A-Za-z0-9]{4,6})(?![A-Za-z0-9])"
)
STANDALONE_CODE_PATTERN = re.compile(r"(?<![A-Za-z0-9])([A-Za-z0-9]{4,6})(?![A-Za-z0-9])")

# Host fragment → provider, first match wins
PROVIDER_HOSTS: list[tuple[str, CloudDiskProvider]] = [
    ("baidu.com", CloudDiskProvider.BAIDU),
    ("aliyundrive.com", CloudDiskProvider.ALIYUN),
    ("alipan.com", CloudDiskProvider.ALIYUN),
    ("quark.cn", CloudDiskProvider.QUARK),
    ("xunlei.com", CloudDiskProvider.XUNLEI),
    ("123pan", CloudDiskProvider.PAN123),
    ("123684.com", CloudDiskProvider.PAN123),
    ("123865.com", CloudDiskProvider.PAN123),
]


def detect_provider(url: str) -> CloudDiskProvider:
    """
    Identify the cloud-disk provider from a share URL.

    Example:
        >>> detect_provider("https://pan.quark.cn/s/abc")
        <CloudDiskProvider.QUARK: 'quark'>
    """
    host = urlparse(url).netloc.lower()
    for fragment, provider in PROVIDER_HOSTS:
        if fragment in host:
            return provider
    return CloudDiskProvider.OTHER


def _find_code(text: str, url: str) -> Optional[str]:
    labelled = LABELLED_CODE_PATTERN.search(text)
    if labelled:
        return labelled.group(1)

    remainder = text.replace(url, " ")
    standalone = STANDALONE_CODE_PATTERN.search(remainder)
    return standalone.group(1) if standalone else None


def extract_cloud_disk_link(text: Optional[str]) -> CloudDiskLink:
    """
    Extract a cloud-disk share link from free-form text.

    Args:
        text: Text pasted by an operator

    Returns:
        CloudDiskLink with url, optional code and provider

    Raises:
        CloudDiskLinkError: If the text contains no share URL
    """
    if not text or not text.strip():
        raise CloudDiskLinkError("No text supplied")

    match = URL_PATTERN.search(text)
    if not match:
        raise CloudDiskLinkError("No cloud-disk share URL found in text")

    url = match.group(1)
    code = _find_code(text, url)
    provider = detect_provider(url)

    logger.debug(f"Cloud-disk link: provider={provider.value}, code={'yes' if code else 'no'}")
    return CloudDiskLink(url=url, code=code, provider=provider)
