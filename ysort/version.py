"""版本信息"""

__version__ = "0.1.0"
__description__ = "有序列表位置维护组件（基于 SQLAlchemy）"
