# errors.py
"""
領域錯誤 (Domain Errors)

每一種錯誤類別都帶著自己的 HTTP 狀態碼，
main.py 的 exception handler 會把它們統一轉成
{"success": false, "message": "..."} 的格式回傳給前端。
"""


class MarketplaceError(Exception):
    """所有業務邏輯錯誤的基底類別"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(MarketplaceError):
    """輸入資料缺漏或格式錯誤"""

    status_code = 400


class UnauthenticatedError(MarketplaceError):
    """沒有帶 Token，或 Token 無效 / 過期"""

    status_code = 401


class ForbiddenError(MarketplaceError):
    """已登入，但不是這筆資料的當事人 (或角色不對)"""

    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class InvalidStateError(MarketplaceError):
    """目前的狀態不允許這個動作，例如訂單還沒交付就想結案"""

    status_code = 409


class ConflictError(MarketplaceError):
    """資料已存在，例如同一張訂單重複評價"""

    status_code = 409
