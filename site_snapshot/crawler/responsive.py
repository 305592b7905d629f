"""
Responsive merge of desktop and mobile snapshots into one document.
"""

import copy

from bs4 import BeautifulSoup, Tag

from ..utils.constants import RESPONSIVE_BREAKPOINT
from .extractor import make_soup


RESPONSIVE_CSS = (
    "/* injected responsive helpers */\n"
    f"@media (max-width: {RESPONSIVE_BREAKPOINT - 1}px){{ .only-desktop{{display:none !important;}} }}\n"
    f"@media (min-width: {RESPONSIVE_BREAKPOINT}px){{ .only-mobile{{display:none !important;}} }}\n"
)

RESPONSIVE_STYLE_ID = "responsive-helpers"
MOBILE_WRAPPER_CLASS = "mobile-only-wrapper only-mobile"


def merge_desktop_mobile(desktop_html: str, mobile_html: str) -> str:
    """
    Merge the mobile snapshot into the desktop one.

    Desktop content is kept as is. Top-level mobile body elements whose id
    is not already present on the desktop side are cloned into a mobile-only
    wrapper at the end of the desktop body.

    Args:
        desktop_html: Desktop snapshot markup
        mobile_html: Mobile snapshot markup

    Returns:
        Merged markup
    """
    desktop = make_soup(desktop_html)
    mobile = make_soup(mobile_html)

    desktop_ids = {el.get('id') for el in desktop.find_all(id=True)}

    wrapper = desktop.new_tag('div', attrs={'class': MOBILE_WRAPPER_CLASS.split()})
    mobile_body = mobile.body or mobile
    for child in mobile_body.find_all(recursive=False):
        if child.name in ('script', 'noscript'):
            continue
        element_id = child.get('id')
        if element_id and element_id in desktop_ids:
            continue
        wrapper.append(copy.copy(child))

    if wrapper.contents:
        (desktop.body or desktop).append(wrapper)

    _inject_helpers(desktop)
    return str(desktop)


def _inject_helpers(soup: BeautifulSoup) -> None:
    if soup.find(id=RESPONSIVE_STYLE_ID):
        return
    style = soup.new_tag('style', id=RESPONSIVE_STYLE_ID)
    style.string = RESPONSIVE_CSS
    head = soup.head
    if not isinstance(head, Tag):
        head = soup.new_tag('head')
        if soup.html:
            soup.html.insert(0, head)
        else:
            soup.insert(0, head)
    head.append(style)
