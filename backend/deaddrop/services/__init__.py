from .uploads import UploadController
from .downloads import DownloadController, DownloadPayload
from .shares import ShareController
