"""
Lab Portal Agent 命令行入口模块。

提供 CLI 命令：run（前台运行 Agent）和 check（校验配置并测试与门户的连接）。
"""
import asyncio
import logging
import signal
import sys

import click

from labportal_agent import __version__
from labportal_agent.config import ConfigError, load_config

DEFAULT_CONFIG = "/etc/labportal/agent.yaml"


@click.group(invoke_without_command=True)
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path (optional, env vars take precedence)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, config, verbose):
    """Lab Portal Agent - 主机服务控制代理。"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # 未指定子命令时，显示基本信息
    if ctx.invoked_subcommand is None:
        click.echo(f"Lab Portal Agent v{__version__}")
        click.echo(f"Config: {config}")
        click.echo("Use --help for available commands")


def _load(ctx):
    config_path = ctx.obj["config_path"]
    explicit = config_path != DEFAULT_CONFIG
    try:
        cfg = load_config(config_path, required=explicit)
        cfg.validate()
    except (FileNotFoundError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return cfg


@cli.command()
@click.pass_context
def run(ctx):
    """以前台模式运行 Agent。"""
    logger = logging.getLogger("labportal-agent")
    cfg = _load(ctx)

    logger.info(f"Starting Lab Portal Agent v{__version__}")
    logger.info(f"Portal: {cfg.portal.url}")
    logger.info(f"Host: {cfg.host_id}")
    logger.info(f"Poll interval: {cfg.poll_interval:g}s")

    from labportal_agent.agent import Agent

    async def _main():
        agent = Agent(cfg)
        loop = asyncio.get_running_loop()
        # 注册信号处理，优雅关闭
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, agent.stop)
        await agent.run()

    try:
        asyncio.run(_main())
    except Exception:
        logger.exception("Agent crashed")
        sys.exit(1)


@cli.command()
@click.pass_context
def check(ctx):
    """校验配置并发送一次心跳测试连接。"""
    cfg = _load(ctx)
    click.echo("✅ Config OK")
    click.echo(f"   Portal: {cfg.portal.url}")
    click.echo(f"   Host: {cfg.host_id}")
    click.echo(f"   Poll interval: {cfg.poll_interval:g}s")

    from labportal_agent.portal_client import PortalClient

    async def _ping():
        client = PortalClient(cfg)
        try:
            return await client.heartbeat()
        finally:
            await client.close()

    try:
        data = asyncio.run(_ping())
    except Exception as e:
        click.echo(f"❌ Connection failed: {e}", err=True)
        sys.exit(1)
    host = data.get("host", {})
    click.echo(f"✅ Connected as host {host.get('name')} (id={host.get('id')})")


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
