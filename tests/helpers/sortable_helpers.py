"""排序测试辅助工具

直接从数据库读取位置，绕开 session 中可能过期的实例状态。
"""

from sqlalchemy import select


def positions(session, model, field: str = "position", label: str = "title", **scope) -> list:
    """按位置升序返回 label 列表

    使用示例:
        assert positions(session, Banner) == ["a", "b", "c"]
    """
    column = getattr(model, field)
    stmt = select(getattr(model, label)).where(column.is_not(None))
    for name, value in scope.items():
        stmt = stmt.where(getattr(model, name).is_(None) if value is None else getattr(model, name) == value)
    return list(session.execute(stmt.order_by(column.asc())).scalars())


def position_map(session, model, field: str = "position", label: str = "title") -> dict:
    """{label: 位置}"""
    rows = session.execute(select(getattr(model, label), getattr(model, field))).all()
    return {name: value for name, value in rows}
