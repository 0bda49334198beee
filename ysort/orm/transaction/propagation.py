"""事务传播行为

定义在已有事务中再次开启事务时的处理方式
"""

from enum import Enum


class TransactionPropagation(str, Enum):
    """事务传播行为

    使用示例:
        # 重排操作默认以 REQUIRED 方式执行：
        # 单独调用时新建事务；在 sort_table_proxy 的事务中调用时加入外层事务
        with tm.transaction(propagation=TransactionPropagation.REQUIRED):
            banner.move_to_position(3)
    """

    REQUIRED = "required"
    """有事务则加入（嵌套层级 +1），没有则新建（默认）"""

    REQUIRES_NEW = "requires_new"
    """已有事务时通过 savepoint 隔离执行，没有则新建"""

    MANDATORY = "mandatory"
    """必须在事务中执行，否则抛出 PropagationError"""

    NESTED = "nested"
    """在外层事务中创建 savepoint；外层回滚会一起回滚"""
