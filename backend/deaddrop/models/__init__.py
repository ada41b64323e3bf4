from .upload_session import UploadSession
from .file import FileRecord
from .download_token import DownloadToken
from .share import Share, ShareContent
