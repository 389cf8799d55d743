from jewelpos import create_app

app = create_app()
