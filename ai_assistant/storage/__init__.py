# 代碼功能說明: 存儲模組初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""存儲模組：對話歷史。"""

from .conversation_store import ConversationStore  # noqa: F401
