DEFAULT_ARTIFACT_CONTRACT_VERSION = "v1"
DEFAULT_ARTIFACT_COMPAT_POLICY = "strict"


def build_document_repository(*args: object, **kwargs: object):
    from submission_commit.lib.artifacts.factory import build_document_repository as _build_document_repository

    return _build_document_repository(*args, **kwargs)


__all__ = ["DEFAULT_ARTIFACT_CONTRACT_VERSION", "DEFAULT_ARTIFACT_COMPAT_POLICY", "build_document_repository"]
