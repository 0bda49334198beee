"""排序配置

解析模型上的 __sortable__ 配置，支持单维度（平铺写法）和多维度两种形式。

使用示例:
    # 单维度：默认字段 position，全表唯一
    class Banner(CoreModel, SortableMixin):
        __sortable__ = {}

    # 单维度：在 slot_id 范围内排序
    class Banner(CoreModel, SortableMixin):
        __sortable__ = {"unique_by": ["slot_id"]}

    # 多维度：每个维度一个独立的位置字段
    class Article(CoreModel, SortableMixin):
        __sortable__ = {
            0: {"unique_by": ["category_id"]},                # 字段名 position_0
            1: {"name": "home_position", "unique": False},
        }
"""

from typing import Any, Dict, Iterator, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ysort.config import SortableSettings, load_yaml_config
from ysort.exceptions import ErrorCode, Err

SortableType = Literal["integer", "smallinteger", "biginteger"]


class SortableConfig(BaseModel):
    """单个排序维度的配置（不可变）

    字段说明:
        - name: 数据库列名
        - alias: 模型属性名，为空时与 name 相同
        - type: 整数类型，integer / smallinteger / biginteger
        - length: 列长度，整数类型下仅作记录
        - unique: unique_by 为空（或 unique_index=False）时，是否为位置列单独建唯一索引
        - unique_by: 排序范围字段，位置只在这些字段值相同的记录之间连续
        - unique_index: 是否为 (name, *unique_by) 建唯一索引
        - index_name: 索引名后缀，完整索引名为 <表名>_<name>_<index_name>
        - options: 透传给 Column 的额外参数

    兼容驼峰写法：uniqueBy / uniqueIndex / indexName。
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = "position"
    alias: Optional[str] = None
    type: SortableType = "integer"
    length: int = Field(default=8, ge=1)
    unique: bool = True
    unique_by: Tuple[str, ...] = Field(default=(), alias="uniqueBy")
    unique_index: bool = Field(default=True, alias="uniqueIndex")
    index_name: str = Field(default="sortable", alias="indexName")
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("unique_by", mode="before")
    @classmethod
    def _check_unique_by(cls, value):
        if value is None:
            return ()
        if not isinstance(value, (list, tuple)):
            raise ValueError("uniqueBy 必须是列表")
        return tuple(value)

    @field_validator("options")
    @classmethod
    def _check_options(cls, value):
        # 移动时需要先把位置清空，位置列必须允许 NULL
        if value.get("nullable") is False:
            raise ValueError("位置字段必须允许为空（nullable=True）")
        return value

    @property
    def attribute(self) -> str:
        """模型上的属性名"""
        return self.alias or self.name

    @property
    def is_scoped(self) -> bool:
        return bool(self.unique_by)


# 平铺写法的识别依据：出现任意一个已知选项名
KNOWN_OPTIONS = frozenset(
    [name for name in SortableConfig.model_fields]
    + [f.alias for f in SortableConfig.model_fields.values() if f.alias]
)


def _build_config(options: Mapping[str, Any], index: Optional[int] = None) -> SortableConfig:
    try:
        return SortableConfig(**dict(options))
    except ValidationError as e:
        raise Err.config(
            f"排序配置无效: {e.errors()[0]['msg']}",
            details=[str(err["msg"]) for err in e.errors()],
            dimension=index,
        ) from e


class SortableConfigSet:
    """一个模型的全部排序维度

    按索引有序，构建后不可修改。迭代得到 (index, config)。
    """

    def __init__(self, configs: Mapping[int, SortableConfig]):
        if not configs:
            raise Err.config("至少需要一个排序维度")
        self._configs: Dict[int, SortableConfig] = dict(sorted(configs.items()))

        seen = {}
        for index, config in self._configs.items():
            for key in {config.name, config.attribute}:
                if key in seen and seen[key] != index:
                    raise Err.config(f"排序字段 {key} 在多个维度中重复", dimension=index)
                seen[key] = index

    @classmethod
    def from_options(cls, options: Union[None, Mapping, list, tuple] = None) -> "SortableConfigSet":
        """从 __sortable__ 配置构建

        - None / {}: 一个默认维度（索引 0）
        - 平铺写法（含已知选项名）: 一个维度（索引 0）
        - {索引: 选项}: 每个索引一个维度，未指定 name 的维度列名为 position_<索引>
        - [选项, ...]: 按列表顺序编号
        """
        if options is None or (isinstance(options, Mapping) and not options):
            return cls({0: SortableConfig()})

        if isinstance(options, SortableConfig):
            return cls({0: options})

        if isinstance(options, (list, tuple)):
            options = dict(enumerate(options))

        if not isinstance(options, Mapping):
            raise Err.config("__sortable__ 必须是字典或列表", value=repr(options))

        if any(isinstance(key, str) and key in KNOWN_OPTIONS for key in options):
            return cls({0: _build_config(options, 0)})

        configs = {}
        for raw_index, dimension_options in options.items():
            index = cls._coerce_index(raw_index)
            if isinstance(dimension_options, SortableConfig):
                configs[index] = dimension_options
                continue
            if dimension_options is None:
                dimension_options = {}
            if not isinstance(dimension_options, Mapping):
                raise Err.config(f"排序维度 {raw_index} 的配置必须是字典", dimension=raw_index)
            dimension_options = dict(dimension_options)
            dimension_options.setdefault("name", f"position_{index}")
            configs[index] = _build_config(dimension_options, index)
        return cls(configs)

    @staticmethod
    def _coerce_index(raw_index) -> int:
        if isinstance(raw_index, bool):
            raise Err.config(f"无法识别的排序选项: {raw_index!r}")
        if isinstance(raw_index, int):
            return raw_index
        if isinstance(raw_index, str) and raw_index.isdigit():
            return int(raw_index)
        raise Err.config(f"无法识别的排序选项: {raw_index!r}", option=raw_index)

    def resolve(self, dimension: Union[int, str] = 0) -> SortableConfig:
        """按索引或字段名（列名/属性名）查找维度

        Raises:
            ConfigurationException: 维度不存在
        """
        if isinstance(dimension, int) and not isinstance(dimension, bool):
            if dimension in self._configs:
                return self._configs[dimension]
        elif isinstance(dimension, str):
            for config in self._configs.values():
                if dimension in (config.name, config.attribute):
                    return config
        raise Err.config(
            f"排序维度不存在: {dimension!r}",
            code=ErrorCode.DIMENSION_NOT_FOUND,
            dimension=dimension,
        )

    def index_of(self, dimension: Union[int, str]) -> int:
        config = self.resolve(dimension)
        for index, candidate in self._configs.items():
            if candidate is config:
                return index
        raise Err.config(f"排序维度不存在: {dimension!r}", code=ErrorCode.DIMENSION_NOT_FOUND)

    def validate_fields(self, model) -> None:
        """检查 unique_by 中的字段都存在于模型上"""
        for index, config in self._configs.items():
            missing = [field for field in config.unique_by if not hasattr(model, field)]
            if missing:
                raise Err.config(
                    f"{model.__name__} 缺少排序范围字段: {', '.join(missing)}",
                    dimension=index,
                    fields=missing,
                )

    @property
    def indexes(self) -> Tuple[int, ...]:
        return tuple(self._configs)

    def __iter__(self) -> Iterator[Tuple[int, SortableConfig]]:
        return iter(self._configs.items())

    def __len__(self) -> int:
        return len(self._configs)

    def __getitem__(self, dimension: Union[int, str]) -> SortableConfig:
        return self.resolve(dimension)

    def __repr__(self) -> str:
        names = ", ".join(f"{i}:{c.name}" for i, c in self._configs.items())
        return f"SortableConfigSet({names})"


# ==================== 进程级默认配置 ====================

_settings: Optional[SortableSettings] = None


def configure_sortable(
    settings: Optional[SortableSettings] = None,
    config_path: Optional[str] = None,
    **kwargs
) -> SortableSettings:
    """设置进程级默认的排序组件配置

    config_path 指向 YAML 文件时读取其中的 sortable 段，kwargs 覆盖文件中的值。

    使用示例:
        configure_sortable(close_gap_on_delete=False)
        configure_sortable(app_settings.sortable)
        configure_sortable(config_path="config/settings.yaml")
    """
    global _settings
    if settings is not None and config_path is not None:
        raise Err.config("settings 与 config_path 只能指定一个")
    if config_path is not None:
        settings = load_yaml_config(config_path, SortableSettings, section="sortable", **kwargs)
    elif settings is None:
        settings = SortableSettings(**kwargs)
    elif kwargs:
        settings = settings.model_copy(update=kwargs)
    _settings = settings
    return _settings


def get_sortable_settings() -> SortableSettings:
    """获取进程级默认配置，未配置时从环境变量构建"""
    global _settings
    if _settings is None:
        _settings = SortableSettings()
    return _settings


def reset_sortable_settings() -> None:
    global _settings
    _settings = None
