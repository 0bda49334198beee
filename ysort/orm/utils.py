"""ORM 工具函数"""

import re


def to_snake_case(name: str) -> str:
    """驼峰命名转下划线命名（支持连续大写缩写如 E2E、API、URL）

    Examples:
        >>> to_snake_case("BannerSlot")
        'banner_slot'
        >>> to_snake_case("APIClient")
        'api_client'
        >>> to_snake_case("E2EOrder")
        'e2e_order'
    """
    # 连续大写+数字后跟大写+小写：APIClient → API_Client
    result = re.sub(r'([A-Z\d]+)([A-Z][a-z])', r'\1_\2', name)
    # 小写字母后跟大写：bannerSlot → banner_Slot
    result = re.sub(r'([a-z])([A-Z])', r'\1_\2', result)
    return result.lower()
