"""包组回退查询

通过外部元数据服务（HTTP + JSON）查询包所属的包组名 (pkgbase)。
该服务只是尽力而为的提示：网络错误、HTTP 错误、解析失败、无结果一律视为 None，
永远不向调用方抛出异常。
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any

from pkgmirror.core.exceptions import MetadataLookupFailed, ValidationError
from pkgmirror.core.models import PackageName
from pkgmirror.utils.net import expand_url

logger = logging.getLogger(__name__)


class MetadataFallback:
    """包组查询适配器: name -> 包组名 | None"""

    def __init__(self, url_template: str, field: str = "pkgbase", timeout: int = 10) -> None:
        self.url_template = url_template
        self.field = field
        self.timeout = timeout

    def lookup_group(self, name: PackageName) -> PackageName | None:
        """查询包组名，任何失败都返回 None"""
        try:
            group = self._query(name)
        except MetadataLookupFailed as e:
            logger.debug("包组查询失败 %s: %s", name, e)
            return None
        if group is None:
            logger.debug("包组查询无结果: %s", name)
        else:
            logger.debug("包组查询: %s -> %s", name, group)
        return group

    def _query(self, name: PackageName) -> PackageName | None:
        try:
            url = expand_url(self.url_template, name=str(name))
        except ValidationError as e:
            raise MetadataLookupFailed(str(e)) from e

        try:
            req = urllib.request.Request(url, headers={"Accept": "application/json"})
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                payload = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return None
            raise MetadataLookupFailed(f"HTTP {e.code}: {url}") from e
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            raise MetadataLookupFailed(f"请求失败 {url}: {e!r}") from e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MetadataLookupFailed(f"响应不是合法 JSON: {url}") from e
        except ValueError as e:
            # http.client.InvalidURL 等
            raise MetadataLookupFailed(f"无效请求 {url}: {e}") from e

        return self._extract(payload)

    def _extract(self, payload: Any) -> PackageName | None:
        """从响应中取第一个结果的包组字段

        兼容 {"results": [{...}]} 与直接返回单个对象两种格式。
        """
        if isinstance(payload, dict) and "results" in payload:
            results = payload["results"]
            if not isinstance(results, list):
                raise MetadataLookupFailed("results 字段不是列表")
            if not results:
                return None
            first = results[0]
        else:
            first = payload
        if not isinstance(first, dict):
            raise MetadataLookupFailed(f"无法识别的响应结构: {type(first).__name__}")

        value = first.get(self.field)
        if not value:
            return None
        try:
            return PackageName(str(value))
        except ValidationError as e:
            raise MetadataLookupFailed(f"包组名无效: {value!r}") from e
