"""事务异常"""


class TransactionError(Exception):
    """事务层错误基类，与业务异常 BusinessException 分开"""


class TransactionNotActiveError(TransactionError):
    def __init__(self, action: str = "执行操作", state: str = None):
        self.action = action
        self.state = state
        suffix = f"（当前状态: {state}）" if state else ""
        super().__init__(f"事务未激活，无法{action}{suffix}")


class TransactionAlreadyCommittedError(TransactionError):
    def __init__(self, action: str = "提交"):
        self.action = action
        super().__init__(f"事务已提交，不能再{action}")


class TransactionAlreadyRolledBackError(TransactionError):
    def __init__(self, action: str = "提交"):
        self.action = action
        super().__init__(f"事务已回滚，不能再{action}")


class PropagationError(TransactionError):
    """传播行为的前置条件不满足（如 MANDATORY 但当前没有事务）"""

    def __init__(self, propagation: str, message: str):
        self.propagation = propagation
        super().__init__(f"{propagation}: {message}")
