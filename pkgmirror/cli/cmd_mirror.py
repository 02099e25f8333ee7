"""镜像管理命令: resolve / track / untrack / update / list-tracked / list-all / remotes"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any

import click

from pkgmirror.core.exceptions import PkgMirrorError
from pkgmirror.services.container import ServiceContainer


def register(main: click.Group) -> None:
    """注册镜像管理相关命令"""
    main.add_command(resolve_cmd)
    main.add_command(track_cmd)
    main.add_command(untrack_cmd)
    main.add_command(update_cmd)
    main.add_command(list_tracked)
    main.add_command(list_all)
    main.add_command(list_remotes)


def _handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """将业务异常转换为 click 错误输出（退出码 1）"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PkgMirrorError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e

    return wrapper


def _report_errors(errors: dict[str, str]) -> None:
    for name, reason in errors.items():
        click.echo(f"  失败 {name}: {reason}", err=True)
    if errors:
        raise SystemExit(1)


@click.command(name="resolve")
@click.argument("name")
@click.pass_obj
@_handle_errors
def resolve_cmd(svc: ServiceContainer, name: str) -> None:
    """解析包名所在的远程"""
    res = svc.mirror.resolve(name)
    if res.via_group is not None:
        click.echo(f"{res.remote.name}/{res.via_group}  (由 {res.name} 经包组替换)")
    else:
        click.echo(f"{res.remote.name}/{res.name}")


@click.command(name="track")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
@_handle_errors
def track_cmd(svc: ServiceContainer, names: tuple[str, ...]) -> None:
    """跟踪包（解析远程并建立本地镜像引用）"""
    outcome = svc.mirror.track(list(names))
    for res in outcome.tracked:
        note = f"  (包组 {res.via_group})" if res.via_group else ""
        click.echo(f"已跟踪: {res.remote.name}/{res.target}{note}")
    for res in outcome.already:
        click.echo(f"已在跟踪: {res.remote.name}/{res.target}")
    _report_errors(outcome.errors)


@click.command(name="untrack")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
@_handle_errors
def untrack_cmd(svc: ServiceContainer, names: tuple[str, ...]) -> None:
    """取消跟踪并删除本地镜像引用"""
    for name, removed in svc.mirror.untrack(list(names)).items():
        click.echo(f"{'已取消跟踪' if removed else '未跟踪'}: {name}")


@click.command(name="update")
@click.argument("names", nargs=-1)
@click.option("--track-new", is_flag=True, help="先跟踪尚未跟踪的包")
@click.pass_obj
@_handle_errors
def update_cmd(svc: ServiceContainer, names: tuple[str, ...], track_new: bool) -> None:
    """同步镜像（不指定包名则同步全部已跟踪的包）"""
    report = svc.mirror.update(list(names), track_new=track_new)
    for remote, pkg in report.updated:
        click.echo(f"已更新: {remote}/{pkg}")
    click.echo(
        f"同步完成: {len(report.updated)} 更新, {len(report.unchanged)} 未变, "
        f"{len(report.errors)} 失败, {report.fetches} 次拉取"
    )
    _report_errors(report.errors)


@click.command(name="list-tracked")
@click.pass_obj
@_handle_errors
def list_tracked(svc: ServiceContainer) -> None:
    """列出已跟踪的包"""
    records = svc.mirror.list_tracked()
    if not records:
        click.echo("没有已跟踪的包。")
        return
    for r in records:
        click.echo(f"  {r.remote.name:15s} {r.name}")


@click.command(name="list-all")
@click.option("--remote", "remote_name", default=None, help="只列出指定远程")
@click.option("--refresh", is_flag=True, help="忽略缓存，强制重新查询远程")
@click.pass_obj
@_handle_errors
def list_all(svc: ServiceContainer, remote_name: str | None, refresh: bool) -> None:
    """列出远程上可用的全部包"""
    for remote, names in svc.mirror.list_all(remote_name, refresh=refresh).items():
        for n in names:
            click.echo(f"{remote}/{n}")


@click.command(name="remotes")
@click.pass_obj
def list_remotes(svc: ServiceContainer) -> None:
    """列出已配置的远程（按优先级）"""
    for r in svc.mirror.remotes():
        click.echo(f"  {r.name:15s} {r.url}  ({r.namespace})")
