"""elasticrelay 常量定义模块."""

VERSION = "0.1.0"

# 每个请求都携带的标识头
USER_AGENT = f"elasticrelay-rest-client/{VERSION}"


class Headers:
    """固定请求头."""

    USER_AGENT = "user-agent"
    CONTENT_TYPE = "content-type"
    ACCEPT = "accept"
    AUTHORIZATION = "authorization"

    JSON_MEDIA_TYPE = "application/json"


class StoreDefaults:
    """文档存储相关的默认值."""

    # ES 6.x/7.x 的文档类型名
    DOC_TYPE = "_doc"

    # 未指定 size 时的搜索结果数量
    SEARCH_SIZE = 10

    # 创建索引后等待的最低健康状态及超时
    HEALTH_STATUS = "yellow"
    HEALTH_TIMEOUT = "5s"

    # 可重试的批量写入拒绝类型
    REJECTED_EXECUTION = "es_rejected_execution_exception"

    # 创建已存在索引时的错误类型
    RESOURCE_ALREADY_EXISTS = "resource_already_exists_exception"


class MappingFiles:
    """索引映射文件名（不含 .json 后缀）."""

    INDEX_SETTINGS = "_settings"
    INDEX_SETTINGS_FOLDER = "_settings_folder"
