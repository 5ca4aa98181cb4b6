from app.tqms import create_app

app = create_app()
