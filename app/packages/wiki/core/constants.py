"""常量定义：HTTP 状态码、目录命名约束与虚拟根节点。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_CREATED = 201
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

PATH_SEPARATOR = "/"
ROOT_PATH = "/"

# 目录名称/描述长度上限，与 directories 表定义保持一致
DIRECTORY_NAME_MAX_LENGTH = 255
DIRECTORY_DESCRIPTION_MAX_LENGTH = 1000
DIRECTORY_PATH_MAX_LENGTH = 1000

# 文件系统不允许出现在目录名中的字符
DIRECTORY_ILLEGAL_CHARS = '/\\:*?"<>|'

# 保留名称（大小写不敏感）
DIRECTORY_RESERVED_NAMES = frozenset(
    {".", "..", "CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

# 复制目录时的默认名称后缀
DIRECTORY_COPY_SUFFIX = "_copy"

# 面包屑中的虚拟根节点（不落库）
VIRTUAL_ROOT_ID = 0
VIRTUAL_ROOT_NAME = "root"
