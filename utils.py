import os
import uuid
from datetime import datetime

import aiofiles  # 非同步檔案處理套件，避免上傳大檔案時卡住整個伺服器
from fastapi import UploadFile

from errors import InvalidInputError

# --- 1. 設定檔案儲存路徑常數 ---
# 統一管理資料夾名稱，以後如果要改路徑，只要改這裡就好
UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", "uploads")   # 所有上傳檔案的根目錄
FOLDER_ATTACHMENTS = "attachments"                  # 子資料夾：聊天附件
FOLDER_AVATARS = "avatars"                          # 子資料夾：使用者頭像

# 單一附件上限 10 MB
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


def setup_upload_directories():
    """
    初始化資料夾結構：伺服器啟動時呼叫，確保資料夾都已經存在。
    exist_ok=True 表示資料夾已經存在就跳過，不會報錯。
    """
    os.makedirs(UPLOAD_ROOT, exist_ok=True)
    os.makedirs(os.path.join(UPLOAD_ROOT, FOLDER_ATTACHMENTS), exist_ok=True)
    os.makedirs(os.path.join(UPLOAD_ROOT, FOLDER_AVATARS), exist_ok=True)


def safe_filename(filename: str | None) -> str:
    # 把空白、斜線等可能造成路徑錯誤的符號換成底線
    name = os.path.basename((filename or "").replace("\\", "/"))
    name = name.replace(" ", "_")
    return name or "file"


async def save_upload_file(file: UploadFile, user_id: int, sub_folder: str = FOLDER_ATTACHMENTS) -> str:
    """
    通用檔案儲存函式

    參數:
    - file: 使用者上傳的檔案物件
    - user_id: 上傳者 ID，寫進檔名方便追查
    - sub_folder: 子資料夾名稱 (預設為聊天附件)

    回傳:
    - 可以直接放進訊息 attachments 的 URL 路徑，例如 /uploads/attachments/...
    """
    target_dir = os.path.join(UPLOAD_ROOT, sub_folder)
    os.makedirs(target_dir, exist_ok=True)

    # 加上時間戳記與亂數，避免不同人上傳同名檔案 (如 resume.pdf) 互相覆蓋
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    new_filename = f"{user_id}_{timestamp}_{uuid.uuid4().hex[:8]}_{safe_filename(file.filename)}"
    file_path = os.path.join(target_dir, new_filename)

    # 分塊寫入：大檔案不會一次吃光記憶體
    written = 0
    async with aiofiles.open(file_path, "wb") as out_file:
        while content := await file.read(CHUNK_SIZE):
            written += len(content)
            if written > MAX_UPLOAD_BYTES:
                break
            await out_file.write(content)

    if written > MAX_UPLOAD_BYTES:
        os.remove(file_path)
        raise InvalidInputError("File too large (max 10MB)")

    # 回傳 URL 格式 (使用 / 分隔，確保跨平台相容性)
    return f"/uploads/{sub_folder}/{new_filename}"
