from mangum import Mangum
from main import app

# the container is reused between invocations; the store stays open across them
handler = Mangum(app, lifespan="off")


def lambda_handler(event, context):
    return handler(event, context)
