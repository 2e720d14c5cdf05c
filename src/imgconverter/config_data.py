"""配置处理模块"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Literal, Mapping

logger = logging.getLogger(__name__)

ImageFormat = Literal["webp", "avif"]
TaskMode = Literal["pool", "sync"]

IMAGE_FORMATS = ("webp", "avif")
DEFAULT_IMAGE_FORMAT: ImageFormat = "webp"
VERSION_SENTINEL = "dev"
ASSET_SUBDIRS = ("uploads", "imgs", "public")


def resolve_version() -> str:
    """从安装包元数据读取版本号，未安装时返回 dev"""
    try:
        return package_version("imgconverter")
    except PackageNotFoundError:
        return VERSION_SENTINEL


@dataclass(frozen=True)
class RuntimeConfig:
    """运行时配置，启动时构建一次"""

    assets_dir: Path
    db_path: Path
    image_format: ImageFormat = DEFAULT_IMAGE_FORMAT
    version: str = VERSION_SENTINEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, cwd: Path | None = None) -> "RuntimeConfig":
        """
        从环境变量创建配置

        DB_PATH / ASSETS_PATH / IMAGE_FORMAT，未设置时使用当前目录下的默认值。
        """
        env = os.environ if environ is None else environ
        work_dir = cwd or Path.cwd()

        if env.get("DB_PATH"):
            db_path = Path(env["DB_PATH"])
            logger.info("使用环境变量指定的数据库路径: %s", db_path)
        else:
            db_path = work_dir / "resource_hub.db"
            logger.info("使用默认数据库路径: %s", db_path)

        if env.get("ASSETS_PATH"):
            assets_dir = Path(env["ASSETS_PATH"])
            logger.info("使用环境变量指定的资源目录: %s", assets_dir)
        else:
            assets_dir = work_dir.parent / "assets"
            logger.info("使用默认资源目录: %s", assets_dir)

        image_format = DEFAULT_IMAGE_FORMAT
        fmt = env.get("IMAGE_FORMAT", "")
        if fmt in IMAGE_FORMATS:
            image_format = fmt
            logger.info("使用环境变量指定的图片格式: %s", fmt)
        elif fmt:
            logger.warning("环境变量指定的图片格式不支持: %s，使用默认格式: %s", fmt, DEFAULT_IMAGE_FORMAT)

        return cls(
            assets_dir=assets_dir,
            db_path=db_path,
            image_format=image_format,  # type: ignore[arg-type]
            version=resolve_version(),
        )

    def ensure_dirs(self) -> None:
        """确保数据库目录和资源目录存在，失败只记录日志"""
        dirs = [self.db_path.parent, self.assets_dir]
        dirs.extend(self.assets_dir / name for name in ASSET_SUBDIRS)
        for d in dirs:
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error("创建目录失败 %s: %s", d, e)


class ConfigStore:
    """唯一持有可变图片格式设置的对象，其余配置只读"""

    def __init__(self, config: RuntimeConfig):
        self._config = config
        self._lock = threading.Lock()

    @property
    def config(self) -> RuntimeConfig:
        with self._lock:
            return self._config

    def get_assets_dir(self) -> Path:
        return self.config.assets_dir

    def get_db_path(self) -> Path:
        return self.config.db_path

    def get_version(self) -> str:
        return self.config.version

    def get_image_format(self) -> ImageFormat:
        return self.config.image_format

    def set_image_format(self, fmt: str) -> bool:
        """设置图片格式，只接受 webp/avif，其它值不修改状态"""
        if fmt not in IMAGE_FORMATS:
            logger.warning("无效的图片格式: %s，不支持", fmt)
            return False
        with self._lock:
            self._config = replace(self._config, image_format=fmt)
        logger.info("图片格式已更新为: %s", fmt)
        return True


@dataclass
class TaskConfig:
    """
    任务配置

    keep_original=false 只在设置了 max_width/max_height（缩放转换）时生效，
    普通转换总是保留原图。
    """

    name: str = "未命名"
    input_path: str = ""
    input_list: list[str] = field(default_factory=list)
    output_format: str = ""
    mode: TaskMode = "pool"
    recursive: bool = False
    concurrency: int = 4
    quality: int = 80
    keep_original: bool = True
    use_target_ext: bool = True
    max_width: int | None = None
    max_height: int | None = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "TaskConfig":
        """从字典创建配置"""
        return cls(
            name=data.get("name", "未命名"),
            input_path=data.get("input_path", ""),
            input_list=list(data.get("input_list", [])),
            output_format=data.get("output_format", "").lower(),
            mode=data.get("mode", "pool").lower(),  # type: ignore
            recursive=data.get("recursive", False),
            concurrency=data.get("concurrency", 4),
            quality=data.get("quality", 80),
            keep_original=data.get("keep_original", True),
            use_target_ext=data.get("use_target_ext", True),
            max_width=data.get("max_width"),
            max_height=data.get("max_height"),
            enabled=data.get("enabled", True),
        )

    def resolve_output_format(self, default: str) -> str:
        """解析输出格式，未指定时使用全局设置"""
        return self.output_format or default

    @property
    def kind(self) -> str:
        """任务类型：list / file / directory；没有任何输入时为 none"""
        if self.input_list:
            return "list"
        if not self.input_path:
            return "none"
        if Path(self.input_path).is_dir():
            return "directory"
        return "file"


@dataclass
class AppConfig:
    """应用配置"""

    tasks: list[TaskConfig] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path) -> "AppConfig":
        """从文件加载配置"""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_data(data)

    @classmethod
    def from_json(cls, json_str: str) -> "AppConfig":
        """从 JSON 字符串加载配置"""
        return cls._from_data(json.loads(json_str))

    @classmethod
    def _from_data(cls, data: dict) -> "AppConfig":
        tasks_data = data.get("tasks", [])
        return cls(tasks=[TaskConfig.from_dict(t) for t in tasks_data])

    def get_enabled_tasks(self) -> list[TaskConfig]:
        """获取所有启用的任务"""
        return [t for t in self.tasks if t.enabled]
