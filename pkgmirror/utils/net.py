"""网络工具 — URL 模板展开与安全校验"""

from __future__ import annotations

from urllib.parse import quote, urlparse

from pkgmirror.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def expand_url(template: str, **params: str) -> str:
    """展开 URL 模板中的 {key} 占位符，参数值做 URL 转义后再校验协议

    Raises:
        ValidationError: 模板缺少占位符参数或协议不合法
    """
    try:
        url = template.format(**{k: quote(v, safe="") for k, v in params.items()})
    except (KeyError, IndexError) as e:
        raise ValidationError(f"URL 模板缺少参数 {e}: {template}") from e
    validate_url_scheme(url, context="url template")
    return url
