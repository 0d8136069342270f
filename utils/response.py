from flask import Response, jsonify


def json_response(message="success", data=None, code=200):
    resp = jsonify({"code": code, "message": message, "data": data})
    resp.status_code = code
    return resp


def download_response(content: bytes, display_name: str):
    """以附件形式返回二进制内容，display_name 需已做百分号编码."""
    resp = Response(content, status=200, mimetype="application/octet-stream")
    resp.headers["Content-Length"] = str(len(content))
    resp.headers["Content-Disposition"] = f'attachment; filename="{display_name}"'
    return resp
