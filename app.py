from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

import config
from views.crawler import crawler_bp

app = Flask(__name__)
if config.CORS_ALLOW_ORIGINS:
    CORS(
        app,
        origins=config.CORS_ALLOW_ORIGINS,
        supports_credentials=config.CORS_SUPPORTS_CREDENTIALS,
    )
else:
    CORS(app)

app.register_blueprint(crawler_bp)


@app.route("/healthz", methods=["GET"])
def healthz():
    return {"status": "ok"}, 200
