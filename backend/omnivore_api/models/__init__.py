from omnivore_api.models.page import Page, PageState, PageType
from omnivore_api.models.upload_file import UploadFile, UploadFileStatus

__all__ = ["Page", "PageState", "PageType", "UploadFile", "UploadFileStatus"]
