# Import all the models, so that Base has them before being
# imported by create_all or Alembic
from deaddrop.db.base_class import Base  # noqa
from deaddrop.models.upload_session import UploadSession  # noqa
from deaddrop.models.file import FileRecord  # noqa
from deaddrop.models.download_token import DownloadToken  # noqa
from deaddrop.models.share import Share, ShareContent  # noqa
