from .upload import UploadCreate, UploadTicket, UploadComplete, UploadCompleted
from .download import FileInfo, DownloadRequest, DownloadGrant
from .share import ShareCreate, ShareCreated, ShareInfo, ShareView
from .sweep import SweepStats
