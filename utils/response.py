from flask import jsonify


def json_response(message="success", data=None, code=200):
    """统一响应包：{"code", "message", "data"}，HTTP 状态码与 code 保持一致。"""
    resp = jsonify({"code": code, "message": message, "data": data})
    resp.status_code = code
    return resp


def error_response(e):
    """BizError 及其子类 -> 响应包；论坛异常的 data 中带 error_code。"""
    return json_response(code=e.code, message=e.message, data=e.data)
