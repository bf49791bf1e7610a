from stockchain import create_app

app = create_app()
