from .crud_upload_session import upload_session
from .crud_file import file
from .crud_download_token import download_token
from .crud_share import share, CreatedShare
