#!/usr/bin/env python3
"""
图片批量转换器 - 配置文件版本
支持 JPG/PNG/WebP → WebP/AVIF
用法：python -m imgconverter -c config.json
"""

import argparse
import logging
import sys
from pathlib import Path

from .config_data import IMAGE_FORMATS, AppConfig, ConfigStore, RuntimeConfig
from .converter import create_codec
from .progress import TaskProcessor
from .worker import is_shutdown, setup_signal_handlers


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="图片批量转换器 (WebP/AVIF)")
    p.add_argument("-c", "--config", type=Path, required=True, help="配置文件")
    p.add_argument("-f", "--format", choices=IMAGE_FORMATS, help="默认输出格式（覆盖 IMAGE_FORMAT）")
    p.add_argument("--disabled-codec", action="store_true", help="使用不可用的编码器（所有转换失败，用于演练）")
    p.add_argument("--no-progress", action="store_true", help="不显示进度条")
    p.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    setup_signal_handlers()

    if not args.config.exists():
        print(f"❌ 配置不存在：{args.config}", flush=True)
        return 1

    runtime = RuntimeConfig.from_env()
    runtime.ensure_dirs()
    store = ConfigStore(runtime)
    if args.format:
        store.set_image_format(args.format)

    app_config = AppConfig.from_file(args.config)
    if not app_config.tasks:
        print("⚠️  无任务", flush=True)
        return 0

    print("=" * 60, flush=True)
    print(f"🚀 图片批量转换器 {store.get_version()}", flush=True)
    print("=" * 60, flush=True)
    print(f"📁 配置：{args.config}", flush=True)
    print(f"📝 任务：{len(app_config.tasks)}", flush=True)

    ok = fail = 0
    for task in app_config.tasks:
        if not task.enabled:
            print(f"⊗ 跳过：{task.name}", flush=True)
            continue
        if is_shutdown():
            print("⚠️  已停止", flush=True)
            break

        fmt = task.resolve_output_format(store.get_image_format())
        try:
            codec = create_codec(fmt, enabled=not args.disabled_codec)
        except ValueError as e:
            print(f"❌ [{task.name}] {e}", flush=True)
            fail += 1
            continue

        result = TaskProcessor(codec, show_progress=not args.no_progress).process(task)
        ok += result.success
        fail += result.failed + (1 if result.errors and not result.failed else 0)

    print("\n" + "=" * 60, flush=True)
    print(f"📊 总计：成功{ok}, 失败{fail}", flush=True)
    print("=" * 60, flush=True)
    return 0 if fail == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
