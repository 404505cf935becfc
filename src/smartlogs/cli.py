"""命令行入口

支持 print-config, doctor, emit 命令。
"""

import argparse
from pathlib import Path

import yaml
from loguru import logger

from smartlogs import __version__
from smartlogs.client import SmartLogs
from smartlogs.config import LogsConfig
from smartlogs.domain.enums import LogBodyType
from smartlogs.domain.errors import ConfigurationError, SerializationError
from smartlogs.utils import json
from smartlogs.utils.log import setup_logging


def _log_block(message: str) -> None:
    logger.info("{}", message.rstrip())


def load_config(args: argparse.Namespace) -> LogsConfig:
    """按 配置文件 > 环境变量 > 命令行参数 的顺序合并配置"""
    base = LogsConfig.load_from_file(Path(args.config)) if args.config else None
    return LogsConfig.from_env(
        base,
        server_url=args.server_url,
        origin=args.origin,
        log_level=args.log_level,
    )


def print_config(config: LogsConfig) -> int:
    """打印当前有效配置"""
    _log_block(
        f"  SmartLogs v{__version__} - 当前配置\n"
        "  " + "=" * 40
    )

    config_dict = config.to_dict()
    try:
        config_dict["endpoint"] = config.resolve_endpoint()
    except ConfigurationError as e:
        config_dict["endpoint"] = None
        config_dict["endpoint_error"] = e.message

    logger.info("{}", yaml.dump(config_dict, allow_unicode=True, default_flow_style=False, sort_keys=False))
    return 0


def run_doctor(config: LogsConfig, timeout: float = 5.0) -> int:
    """
    连接诊断

    Returns:
        0 表示在超时内完成时间同步，1 表示失败
    """
    _log_block(
        f"  SmartLogs v{__version__} - 连接诊断\n"
        "  " + "=" * 40
    )

    try:
        endpoint = config.resolve_endpoint()
    except ConfigurationError as e:
        logger.error("FAIL 配置无效: {}", e.message)
        return 1

    if endpoint is None:
        logger.error("FAIL SmartLogs 未启用 (LOGS_ENABLED=0 或地址为空)")
        return 1

    logger.info("连接采集端: {}", endpoint)
    client = SmartLogs(config=config)
    try:
        ready = client.wait_ready(timeout)
        stats = client.get_stats()
    finally:
        client.close(timeout=1.0)

    if ready:
        logger.info("OK  连接就绪，时间同步完成")
        return 0

    logger.error("FAIL {}s 内未就绪，当前状态: {}", timeout, stats.get("state"))
    if stats.get("last_failure_reason"):
        logger.error("     最近一次失败: {}", stats["last_failure_reason"])
    return 1


def run_emit(config: LogsConfig, args: argparse.Namespace) -> int:
    """创建工作流并发送一条日志"""
    body = None
    if args.body:
        try:
            body = json.loads(args.body)
        except SerializationError as e:
            logger.error("--body 不是合法 JSON: {}", e.message)
            return 2

    client = SmartLogs(config=config)
    if not client.enabled:
        logger.error("SmartLogs 未启用，消息未发送")
        return 1

    try:
        client.create_workflow(args.workflow_id, args.title or args.workflow_id)
        client.log(args.workflow_id, args.message, body, body_type=args.body_type)
        if args.end:
            client.end_workflow(args.workflow_id)
    finally:
        client.close(timeout=args.timeout)

    remaining = client.queue_size
    if remaining:
        logger.error("FAIL {} 条消息未发送", remaining)
        return 1

    logger.info("OK  消息已发送")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartlogs",
        description=f"SmartLogs v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用方式:
  查看配置: smartlogs print-config
  连接诊断: smartlogs doctor --timeout 5
  发送日志: smartlogs emit --workflow-id run-1 --message "hello" --body '{"a": 1}' --end

环境变量:
  LOGS_SERVER_URL  采集端地址 (默认 ws://localhost:5175)
  LOGS_ORIGIN      来源标识 (默认 client)
  LOGS_ENABLED     设为 0 时禁用
        """,
    )
    parser.add_argument("--server-url", default=None, help="采集端地址 (ws:// 或 wss://)")
    parser.add_argument("--origin", default=None, help="来源标识")
    parser.add_argument("--config", default=None, help="YAML 配置文件路径")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别，默认 INFO",
    )

    # 子命令
    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    subparsers.add_parser("print-config", help="打印当前配置")

    doctor_parser = subparsers.add_parser("doctor", help="检查采集端连接")
    doctor_parser.add_argument("--timeout", type=float, default=5.0, help="等待就绪的秒数")

    emit_parser = subparsers.add_parser("emit", help="发送一条日志")
    emit_parser.add_argument("--workflow-id", required=True, help="工作流 ID")
    emit_parser.add_argument("--message", required=True, help="日志内容")
    emit_parser.add_argument("--body", default=None, help="JSON 格式的日志数据")
    emit_parser.add_argument(
        "--body-type",
        default=LogBodyType.OBJECT.value,
        choices=[t.value for t in LogBodyType],
        help="数据类型，默认 object",
    )
    emit_parser.add_argument("--title", default=None, help="工作流标题，默认与 ID 相同")
    emit_parser.add_argument("--end", action="store_true", help="发送后结束工作流")
    emit_parser.add_argument("--timeout", type=float, default=10.0, help="等待发送完成的秒数")

    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args)
    setup_logging(config.log_level)

    if args.command == "print-config":
        return print_config(config)

    if args.command == "doctor":
        return run_doctor(config, timeout=args.timeout)

    if args.command == "emit":
        return run_emit(config, args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
